from datetime import date

from django.core.management.base import BaseCommand, CommandError

from loyers.services import RelanceService


class Command(BaseCommand):
    help = "Émet un événement de relance pour chaque échéance en attente ou en retard."

    def add_arguments(self, parser):
        parser.add_argument('--date', default=None, help="Date de référence AAAA-MM-JJ (défaut : aujourd'hui)")

    def handle(self, *args, **options):
        aujourd_hui = None
        if options['date']:
            try:
                aujourd_hui = date.fromisoformat(options['date'])
            except ValueError:
                raise CommandError(f"Date invalide : {options['date']!r} (format attendu AAAA-MM-JJ).")

        evenements = RelanceService.emettre_relances(aujourd_hui)
        self.stdout.write(self.style.SUCCESS(f"{len(evenements)} relance(s) émise(s)."))
