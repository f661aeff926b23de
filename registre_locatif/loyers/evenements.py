"""
Événements sortants (outbox).

Les effets de bord externes (rendu de quittance, envoi de relance) sont écrits
dans la même transaction que la mutation du registre, puis publiés après le
commit. Un gestionnaire en échec laisse l'événement en attente : il sera repris
par la commande `publier_evenements` et n'annule jamais l'opération d'origine.
"""
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from .models import Evenement

logger = logging.getLogger(__name__)

GESTIONNAIRES_PAR_DEFAUT = ['loyers.evenements.journaliser']


def journaliser(evenement):
    """Gestionnaire par défaut : trace l'événement dans les logs."""
    logger.info(f"Événement {evenement.type} #{evenement.pk}: {evenement.payload}")


def get_gestionnaires():
    chemins = getattr(settings, 'LOYERS_GESTIONNAIRES_EVENEMENTS', GESTIONNAIRES_PAR_DEFAUT)
    return [import_string(chemin) for chemin in chemins]


def emettre(type_evenement, payload):
    """
    Enregistre un événement et planifie sa publication après le commit courant.

    Returns:
        Evenement: l'événement créé
    """
    evenement = Evenement.objects.create(type=type_evenement, payload=payload)
    transaction.on_commit(lambda: publier(evenement.pk))
    logger.debug(f"Événement {type_evenement} #{evenement.pk} en attente de publication")
    return evenement


def publier(evenement_id):
    """
    Transmet un événement à tous les gestionnaires configurés.

    Returns:
        bool: True si l'événement est publié (ou l'était déjà)
    """
    evenement = Evenement.objects.get(pk=evenement_id)
    if evenement.est_publie:
        return True

    evenement.tentatives += 1
    try:
        for gestionnaire in get_gestionnaires():
            gestionnaire(evenement)
    except Exception as e:
        # Le registre est déjà commité : l'événement reste en attente
        logger.exception(f"Échec de publication de l'événement #{evenement.pk} ({evenement.type})")
        evenement.derniere_erreur = f"{type(e).__name__}: {e}"
        evenement.save(update_fields=['tentatives', 'derniere_erreur'])
        return False

    evenement.publie_le = timezone.now()
    evenement.derniere_erreur = ""
    evenement.save(update_fields=['tentatives', 'publie_le', 'derniere_erreur'])
    return True


def publier_en_attente(limite=None):
    """
    Republie les événements restés en attente.

    Returns:
        tuple: (nb_publies, nb_echecs)
    """
    en_attente = Evenement.objects.filter(publie_le__isnull=True).order_by('cree_le')
    if limite:
        en_attente = en_attente[:limite]

    publies = 0
    echecs = 0
    for evenement_id in list(en_attente.values_list('pk', flat=True)):
        if publier(evenement_id):
            publies += 1
        else:
            echecs += 1

    logger.info(f"Publication des événements en attente : {publies} publié(s), {echecs} échec(s)")
    return publies, echecs
