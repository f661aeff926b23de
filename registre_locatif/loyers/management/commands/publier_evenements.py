from django.core.management.base import BaseCommand

from loyers.evenements import publier_en_attente


class Command(BaseCommand):
    help = "Republie les événements sortants restés en attente (gestionnaire en échec)."

    def add_arguments(self, parser):
        parser.add_argument('--limite', type=int, default=None, help="Nombre maximum d'événements traités")

    def handle(self, *args, **options):
        publies, echecs = publier_en_attente(limite=options['limite'])
        message = f"{publies} événement(s) publié(s), {echecs} échec(s)."
        if echecs:
            self.stdout.write(self.style.WARNING(message))
        else:
            self.stdout.write(self.style.SUCCESS(message))
