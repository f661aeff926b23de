"""
Calculateurs purs du registre locatif : échéancier, solde, répartition des charges.

Aucun de ces calculs n'écrit en base ; la persistance est faite par services.py.
"""
import calendar
from datetime import date
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
import logging

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.utils import timezone

from .exceptions import RepartitionInvalideError, RepartitionManuelleError
from .statuts import StatutEcheance

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


def unite_arrondi():
    """Unité d'arrondi des montants répartis (1 = unité monétaire entière)."""
    return Decimal(str(getattr(settings, 'LOYERS_UNITE_ARRONDI', '1')))


def arrondir(montant, rounding=ROUND_HALF_UP):
    return Decimal(montant).quantize(unite_arrondi(), rounding=rounding)


def date_echeance_du_mois(annee, mois, jour_echeance):
    """Date d'échéance d'un mois, le jour étant ramené au dernier jour des mois courts."""
    dernier_jour = calendar.monthrange(annee, mois)[1]
    return date(annee, mois, min(jour_echeance, dernier_jour))


class EcheancierCalculator:
    """Construction de l'échéancier mensuel d'un bail."""

    @staticmethod
    def generer(bail, date_debut, date_fin):
        """
        Calcule les échéances d'un bail entre deux dates.

        Args:
            bail: Instance de Bail (non nécessairement sauvegardée)
            date_debut: Borne basse incluse
            date_fin: Borne haute incluse

        Returns:
            list: Liste ordonnée de dict {date_echeance, montant, statut}
        """
        start_date = max(date_debut, bail.date_debut)
        end_date = date_fin if not bail.date_fin else min(date_fin, bail.date_fin)

        if start_date > end_date:
            logger.debug(f"Aucune échéance pour {bail} entre {date_debut} et {date_fin}")
            return []

        echeances = []
        curr = date(start_date.year, start_date.month, 1)

        while curr <= end_date:
            date_echeance = date_echeance_du_mois(curr.year, curr.month, bail.jour_echeance)

            if start_date <= date_echeance <= end_date:
                echeances.append({
                    'date_echeance': date_echeance,
                    'montant': Decimal(bail.montant_loyer),
                    'statut': StatutEcheance.A_VENIR,
                })

            curr += relativedelta(months=1)

        return echeances

    @staticmethod
    def horizon_initial(bail):
        """Fin de l'échéancier créé à l'activation : 31 décembre de l'année d'entrée."""
        fin_annee = date(bail.date_debut.year, 12, 31)
        if bail.date_fin:
            return min(fin_annee, bail.date_fin)
        return fin_annee

    @staticmethod
    def generer_annee(bail, annee):
        return EcheancierCalculator.generer(bail, date(annee, 1, 1), date(annee, 12, 31))


class SoldeCalculator:
    """Synthèse financière d'un bail, toujours recalculée depuis ses échéances."""

    @staticmethod
    def calculer(bail, aujourd_hui=None, echeances=None):
        """
        Calcule le solde d'un bail.

        Les échéances annulées sont ignorées. Le montant en retard est le reste
        à payer des échéances dont la date est dépassée.

        Args:
            bail: Instance de Bail
            aujourd_hui: Date de référence (défaut : aujourd'hui)
            echeances: Échéances déjà chargées (défaut : bail.echeances)

        Returns:
            dict: {
                'total_echeances', 'nb_payees', 'nb_en_attente', 'nb_en_retard',
                'nb_a_venir', 'nb_partielles', 'montant_paye', 'montant_en_retard',
                'montant_total_du', 'solde'
            }
        """
        if aujourd_hui is None:
            aujourd_hui = timezone.localdate()
        if echeances is None:
            echeances = bail.echeances.all()

        compteurs = {statut: 0 for statut in StatutEcheance}
        montant_total_du = ZERO
        montant_paye = ZERO
        montant_en_retard = ZERO

        for echeance in echeances:
            statut = echeance.statut_au(aujourd_hui)
            compteurs[statut] += 1
            if statut == StatutEcheance.ANNULE:
                continue

            montant_total_du += echeance.montant_du
            montant_paye += echeance.montant_paye

            if statut != StatutEcheance.PAYE and echeance.date_echeance < aujourd_hui:
                montant_en_retard += echeance.montant_restant

        synthese = {
            'total_echeances': sum(compteurs.values()) - compteurs[StatutEcheance.ANNULE],
            'nb_payees': compteurs[StatutEcheance.PAYE],
            'nb_en_attente': compteurs[StatutEcheance.EN_ATTENTE],
            'nb_en_retard': compteurs[StatutEcheance.EN_RETARD],
            'nb_a_venir': compteurs[StatutEcheance.A_VENIR],
            'nb_partielles': compteurs[StatutEcheance.PARTIEL],
            'montant_paye': montant_paye,
            'montant_en_retard': montant_en_retard,
            'montant_total_du': montant_total_du,
            'solde': montant_total_du - montant_paye,
        }

        logger.debug(f"Solde {bail}: {synthese['solde']} ({synthese['total_echeances']} échéances)")
        return synthese


class RepartitionCalculator:
    """Répartition d'une charge partagée entre colocataires."""

    MODES = ('EQUAL', 'PRORATA', 'MANUAL')

    @staticmethod
    def calculer(montant_total, participants, mode, repartition_manuelle=None, poids=None):
        """
        Répartit un montant entre participants.

        EQUAL et PRORATA arrondissent chaque part sauf la dernière, qui reçoit
        le reste : la somme des parts vaut toujours exactement le total. Si les
        arrondis dépassent le total, les parts sont tronquées à l'unité
        inférieure et le reste, positif ou nul, va toujours au dernier.
        MANUAL n'ajuste rien et rejette toute somme différente du total.

        Args:
            montant_total: Montant de la charge
            participants: Liste ordonnée des participants (instances ou identifiants)
            mode: 'EQUAL', 'PRORATA' ou 'MANUAL'
            repartition_manuelle: dict {participant: montant} (MANUAL)
            poids: dict {participant: poids} (PRORATA)

        Returns:
            list: Liste de dict {participant, montant}
        """
        total = Decimal(montant_total)
        participants = list(participants)

        if total <= 0:
            raise RepartitionInvalideError(f"Le montant à répartir doit être positif (reçu : {total}).")
        if not participants:
            raise RepartitionInvalideError("Aucun participant pour répartir la charge.")
        if len(set(participants)) != len(participants):
            raise RepartitionInvalideError("Un participant apparaît plusieurs fois dans la répartition.")

        if mode == 'EQUAL':
            montants = RepartitionCalculator._parts_avec_reste(
                total, [Decimal(1)] * len(participants)
            )
        elif mode == 'PRORATA':
            montants = RepartitionCalculator._parts_avec_reste(
                total, RepartitionCalculator._poids_ordonnes(participants, poids)
            )
        elif mode == 'MANUAL':
            montants = RepartitionCalculator._valider_manuelle(total, participants, repartition_manuelle)
        else:
            raise RepartitionInvalideError(f"Mode de répartition inconnu : {mode!r}.")

        logger.info(f"Répartition {mode} de {total} sur {len(participants)} participant(s): {montants}")

        return [
            {'participant': participant, 'montant': montant}
            for participant, montant in zip(participants, montants)
        ]

    @staticmethod
    def _parts_avec_reste(total, poids):
        somme_poids = sum(poids)
        parts = [arrondir(total * p / somme_poids) for p in poids[:-1]]
        dernier = total - sum(parts, ZERO)

        # Arrondis cumulés supérieurs au total : les parts sont tronquées pour
        # que le dernier participant garde un reste positif ou nul
        if dernier < 0:
            parts = [arrondir(total * p / somme_poids, rounding=ROUND_DOWN) for p in poids[:-1]]
            dernier = total - sum(parts, ZERO)
            logger.debug(f"Répartition de {total}: parts tronquées, reste {dernier} au dernier participant")

        parts.append(dernier)
        return parts

    @staticmethod
    def _poids_ordonnes(participants, poids):
        if not poids:
            raise RepartitionInvalideError("La répartition au prorata exige un poids par participant.")

        manquants = [p for p in participants if p not in poids]
        if manquants:
            raise RepartitionInvalideError(f"Poids manquant pour : {', '.join(str(p) for p in manquants)}.")

        valeurs = [Decimal(str(poids[p])) for p in participants]
        if any(v < 0 for v in valeurs):
            raise RepartitionInvalideError("Les poids de répartition ne peuvent pas être négatifs.")
        if sum(valeurs) <= 0:
            raise RepartitionInvalideError("La somme des poids de répartition doit être positive.")
        return valeurs

    @staticmethod
    def _valider_manuelle(total, participants, repartition_manuelle):
        if not repartition_manuelle:
            raise RepartitionInvalideError("La répartition manuelle exige une table de montants.")

        inconnus = [p for p in repartition_manuelle if p not in participants]
        manquants = [p for p in participants if p not in repartition_manuelle]
        if inconnus or manquants:
            raise RepartitionInvalideError(
                "La table manuelle doit couvrir exactement les participants de la charge."
            )

        montants = [Decimal(str(repartition_manuelle[p])) for p in participants]
        if any(m < 0 for m in montants):
            raise RepartitionInvalideError("Un montant de répartition manuelle ne peut pas être négatif.")

        somme = sum(montants, ZERO)
        if somme != total:
            raise RepartitionManuelleError(total, somme)
        return montants
