import logging

from django.core.management.base import BaseCommand
from django.utils import timezone

from loyers.services import EcheancierService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Prolonge sur l'année cible les échéanciers des baux actifs arrêtés en décembre de l'année précédente."

    def add_arguments(self, parser):
        parser.add_argument(
            '--annee', type=int, default=None,
            help="Année à ajouter (défaut : année suivante)",
        )

    def handle(self, *args, **options):
        annee_cible = options['annee'] or timezone.localdate().year + 1
        resultat = EcheancierService.prolonger_tous(annee_cible)

        logger.info(f"Prolongation {annee_cible}: {resultat}")
        self.stdout.write(self.style.SUCCESS(
            f"{resultat['baux']} bail(s) prolongé(s) sur {annee_cible}, "
            f"{resultat['echeances']} échéance(s) créée(s), {resultat['ignores']} ignoré(s)."
        ))
