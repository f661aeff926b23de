"""
Cycle de vie des échéances, des lignes de charge et des dépôts de garantie.

Le statut n'est jamais stocké : il est recalculé à chaque lecture à partir de
(date d'échéance, montant payé, montant dû, date du jour). Une tâche de fond
manquée ne peut donc pas désynchroniser l'affichage.
"""
from decimal import Decimal

from django.db import models


class StatutEcheance(models.TextChoices):
    A_VENIR = 'A_VENIR', 'À venir'
    EN_ATTENTE = 'EN_ATTENTE', 'En attente'
    EN_RETARD = 'EN_RETARD', 'En retard'
    PARTIEL = 'PARTIEL', 'Partiellement payée'
    PAYE = 'PAYE', 'Payée'
    ANNULE = 'ANNULE', 'Annulée'


class StatutLigne(models.TextChoices):
    UNPAID = 'UNPAID', 'Impayé'
    PARTIAL = 'PARTIAL', 'Partiel'
    PAID = 'PAID', 'Payé'


class StatutCharge(models.TextChoices):
    DRAFT = 'DRAFT', 'Brouillon'
    SENT = 'SENT', 'Envoyée'
    PARTIAL = 'PARTIAL', 'Partiellement payée'
    PAID = 'PAID', 'Payée'


class StatutCaution(models.TextChoices):
    RECU = 'RECU', 'Reçue'
    RESTITUE = 'RESTITUE', 'Restituée'
    PARTIELLEMENT_RESTITUE = 'PARTIELLEMENT_RESTITUE', 'Partiellement restituée'
    RETENU = 'RETENU', 'Retenue'


STATUTS_TERMINAUX = frozenset({StatutEcheance.PAYE, StatutEcheance.ANNULE})
STATUTS_QUITTANCABLES = frozenset({StatutEcheance.PAYE, StatutEcheance.PARTIEL})
STATUTS_A_RELANCER = frozenset({StatutEcheance.EN_ATTENTE, StatutEcheance.EN_RETARD})


def calculer_statut(date_echeance, montant_paye, montant_du, aujourd_hui, annulee=False):
    """
    Classe une échéance dans son état courant.

    Args:
        date_echeance: Date d'exigibilité du loyer
        montant_paye: Cumul des paiements reçus
        montant_du: Montant attendu
        aujourd_hui: Date de référence
        annulee: True si l'échéance a fait l'objet d'une annulation administrative

    Returns:
        StatutEcheance
    """
    if annulee:
        return StatutEcheance.ANNULE

    montant_paye = Decimal(montant_paye or 0)
    if montant_paye >= Decimal(montant_du) and montant_paye > 0:
        return StatutEcheance.PAYE
    if montant_paye > 0:
        return StatutEcheance.PARTIEL

    # Aucun paiement : seul le temps fait avancer l'état (pas de délai de grâce)
    if aujourd_hui < date_echeance:
        return StatutEcheance.A_VENIR
    if aujourd_hui == date_echeance:
        return StatutEcheance.EN_ATTENTE
    return StatutEcheance.EN_RETARD


def est_terminal(statut):
    return statut in STATUTS_TERMINAUX


def calculer_statut_ligne(montant_paye, montant):
    montant_paye = Decimal(montant_paye or 0)
    if montant_paye >= Decimal(montant):
        return StatutLigne.PAID
    if montant_paye > 0:
        return StatutLigne.PARTIAL
    return StatutLigne.UNPAID


def calculer_statut_charge(statuts_lignes, envoyee):
    """
    Statut global d'une charge à partir de ses lignes.

    PAID si toutes les lignes sont payées, PARTIAL dès qu'une ligne a reçu un
    paiement, sinon SENT (ou DRAFT tant que la charge n'a pas été envoyée).
    """
    statuts_lignes = list(statuts_lignes)
    if statuts_lignes and all(s == StatutLigne.PAID for s in statuts_lignes):
        return StatutCharge.PAID
    if any(s in (StatutLigne.PARTIAL, StatutLigne.PAID) for s in statuts_lignes):
        return StatutCharge.PARTIAL
    return StatutCharge.SENT if envoyee else StatutCharge.DRAFT


def doit_relancer(echeance, aujourd_hui=None):
    """True si une relance externe doit partir pour cette échéance."""
    return echeance.statut_au(aujourd_hui) in STATUTS_A_RELANCER


def calculer_statut_caution(montant, montant_restitue):
    """
    Statut d'un dépôt de garantie.

    RECU tant que rien n'a été restitué, puis RESTITUE, PARTIELLEMENT_RESTITUE
    ou RETENU selon la part rendue au locataire.
    """
    if montant_restitue is None:
        return StatutCaution.RECU
    montant_restitue = Decimal(montant_restitue)
    if montant_restitue >= Decimal(montant):
        return StatutCaution.RESTITUE
    if montant_restitue > 0:
        return StatutCaution.PARTIELLEMENT_RESTITUE
    return StatutCaution.RETENU
