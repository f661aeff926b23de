"""
Opérations transactionnelles du registre locatif.

Toute mutation des échéances d'un bail se fait sous verrou de la ligne Bail
(select_for_update), toute mutation des lignes d'une charge sous verrou de la
ligne Charge : un seul écrivain par agrégat.
"""
from datetime import date
from decimal import Decimal, InvalidOperation
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import evenements
from .calculators import EcheancierCalculator, RepartitionCalculator
from .exceptions import (
    BailInactifError, CautionInvalideError, ChargeInvalideError, EcheanceClotureeError,
    EcheanceProtegeeError, ExtensionImpossibleError, HorizonDepasseError, LigneSoldeeError,
    ModePaiementInvalideError, MontantInvalideError, ParametreInvalideError, QuittanceImpossibleError,
    RegistreError, SourceInvalideError,
)
from .models import (
    Bail, Charge, CompteurQuittance, DepotCaution, Echeance, LigneRepartition, Paiement,
    PaiementCharge, Quittance,
)
from .statuts import (
    STATUTS_QUITTANCABLES, StatutEcheance, StatutLigne, doit_relancer, est_terminal,
)

logger = logging.getLogger(__name__)

# Traduction des mois en français
MOIS_FR = {
    1: 'Janvier', 2: 'Février', 3: 'Mars', 4: 'Avril',
    5: 'Mai', 6: 'Juin', 7: 'Juillet', 8: 'Août',
    9: 'Septembre', 10: 'Octobre', 11: 'Novembre', 12: 'Décembre'
}


def _verrouiller_bail(bail_id):
    return Bail.objects.select_for_update().get(pk=bail_id)


def _montant(valeur):
    try:
        montant = Decimal(str(valeur))
    except (InvalidOperation, TypeError, ValueError):
        raise MontantInvalideError(valeur)
    if not montant.is_finite() or montant <= 0:
        raise MontantInvalideError(valeur)
    return montant


# ============================================================================
# ÉCHÉANCIER
# ============================================================================

class EcheancierService:
    """Création et prolongation de l'échéancier persistant d'un bail."""

    @staticmethod
    def generer_echeancier(bail):
        """
        Crée l'échéancier initial d'un bail (de l'entrée au 31 décembre).

        Les échéances déjà présentes (même bail, même date) sont conservées telles
        quelles : un second appel ne crée rien.

        Returns:
            list: Échéances du bail, triées par date
        """
        with transaction.atomic():
            bail = _verrouiller_bail(bail.pk)
            if not bail.est_actif:
                raise BailInactifError(bail)

            prevues = EcheancierCalculator.generer(
                bail, bail.date_debut, EcheancierCalculator.horizon_initial(bail)
            )
            creees = EcheancierService._inserer(bail, prevues)

        logger.info(f"Échéancier généré pour {bail}: {len(creees)} nouvelle(s) échéance(s)")
        return list(bail.echeances.order_by('date_echeance'))

    @staticmethod
    def prolonger(bail, annee_cible):
        """
        Ajoute les échéances de `annee_cible` à l'échéancier d'un bail.

        La prolongation n'est possible que si la dernière échéance tombe en
        décembre de l'année précédente. Si l'année est déjà couverte, rien n'est
        créé (union par clé (bail, date d'échéance)).

        Returns:
            list: Échéances créées par cet appel
        """
        with transaction.atomic():
            bail = _verrouiller_bail(bail.pk)
            if not bail.est_actif:
                raise BailInactifError(bail)
            if bail.date_fin and bail.date_fin < date(annee_cible, 1, 1):
                raise HorizonDepasseError(bail, annee_cible)

            derniere = bail.echeances.order_by('-date_echeance').first()
            if derniere is None:
                raise ExtensionImpossibleError(bail, annee_cible)

            horizon = derniere.date_echeance
            deja_couverte = horizon.year >= annee_cible
            contigue = horizon.year == annee_cible - 1 and horizon.month == 12
            if not (deja_couverte or contigue):
                raise ExtensionImpossibleError(bail, annee_cible, horizon)

            prevues = EcheancierCalculator.generer_annee(bail, annee_cible)
            creees = EcheancierService._inserer(bail, prevues)

        logger.info(f"Prolongation {annee_cible} de {bail}: {len(creees)} échéance(s) créée(s)")
        return creees

    @staticmethod
    def prolonger_tous(annee_cible):
        """
        Prolonge tous les baux actifs dont l'horizon s'arrête en décembre de l'année précédente.

        Returns:
            dict: {'baux': int, 'echeances': int, 'ignores': int}
        """
        resultat = {'baux': 0, 'echeances': 0, 'ignores': 0}

        baux = Bail.objects.filter(
            statut__in=Bail.STATUTS_ACTIFS,
            echeances__date_echeance__year=annee_cible - 1,
            echeances__date_echeance__month=12,
        ).distinct()

        for bail in baux:
            try:
                creees = EcheancierService.prolonger(bail, annee_cible)
            except RegistreError as e:
                logger.warning(f"Prolongation {annee_cible} ignorée pour {bail}: {e}")
                resultat['ignores'] += 1
                continue
            resultat['baux'] += 1
            resultat['echeances'] += len(creees)

        return resultat

    @staticmethod
    def _inserer(bail, prevues):
        existantes = set(bail.echeances.values_list('date_echeance', flat=True))
        nouvelles = [
            Echeance(bail=bail, date_echeance=p['date_echeance'], montant_du=p['montant'])
            for p in prevues
            if p['date_echeance'] not in existantes
        ]
        Echeance.objects.bulk_create(nouvelles)
        return nouvelles


# ============================================================================
# PAIEMENTS DE LOYER
# ============================================================================

class PaiementService:
    """Enregistrement des paiements, seul point de mutation des échéances."""

    SOURCES = tuple(code for code, _ in Echeance.SOURCE_CHOICES)
    MODES = tuple(code for code, _ in Echeance.MODE_CHOICES)

    @staticmethod
    def enregistrer_paiement(echeance, montant, mode_paiement, reference=None, note="",
                             source='OWNER', date_paiement=None, aujourd_hui=None):
        """
        Ajoute un paiement au cumul d'une échéance.

        Rejouer la même référence sur la même échéance ne compte rien deux fois :
        l'échéance est renvoyée telle quelle.

        Args:
            echeance: Instance d'Echeance
            montant: Montant reçu (> 0)
            mode_paiement: Code de Echeance.MODE_CHOICES
            reference: Référence de la transaction (clé d'idempotence)
            note: Commentaire libre
            source: 'TENANT' ou 'OWNER'
            date_paiement: Date du paiement (défaut : aujourd'hui)
            aujourd_hui: Date de référence pour le statut

        Returns:
            Echeance: l'échéance à jour
        """
        montant = _montant(montant)
        if source not in PaiementService.SOURCES:
            raise SourceInvalideError(source)
        if mode_paiement not in PaiementService.MODES:
            raise ModePaiementInvalideError(mode_paiement)

        reference = reference or None
        if aujourd_hui is None:
            aujourd_hui = timezone.localdate()
        date_paiement = date_paiement or aujourd_hui

        with transaction.atomic():
            _verrouiller_bail(echeance.bail_id)
            echeance = Echeance.objects.get(pk=echeance.pk)

            if reference and echeance.paiements.filter(reference=reference).exists():
                logger.info(f"Paiement {reference} déjà enregistré sur {echeance}, ignoré")
                return echeance

            statut = echeance.statut_au(aujourd_hui)
            if est_terminal(statut):
                raise EcheanceClotureeError(echeance, statut)

            Paiement.objects.create(
                echeance=echeance,
                montant=montant,
                date_paiement=date_paiement,
                mode_paiement=mode_paiement,
                reference=reference,
                note=note,
                source_enregistrement=source,
            )

            echeance.montant_paye += montant
            if echeance.date_paiement is None:
                echeance.date_paiement = date_paiement
            echeance.mode_paiement = mode_paiement
            echeance.reference = reference or ""
            echeance.note = note
            echeance.source_enregistrement = source
            echeance.save(update_fields=[
                'montant_paye', 'date_paiement', 'mode_paiement', 'reference', 'note',
                'source_enregistrement',
            ])

        logger.info(
            f"Paiement {montant} ({mode_paiement}, {source}) sur {echeance}: "
            f"cumul {echeance.montant_paye}/{echeance.montant_du} -> {echeance.statut_au(aujourd_hui)}"
        )
        return echeance

    @staticmethod
    def enregistrer_paiement_multiple(bail, nombre_mois, mode_paiement, reference=None, note="",
                                      source='OWNER', date_paiement=None, aujourd_hui=None):
        """
        Solde intégralement les `nombre_mois` plus anciennes échéances ouvertes.

        Avec une référence, un second appel renvoie les échéances déjà réglées
        sous cette référence au lieu d'en solder de nouvelles.

        Returns:
            list: Échéances réglées
        """
        if nombre_mois < 1:
            raise ParametreInvalideError("Le nombre de mois à régler doit être au moins 1.")

        reference = reference or None
        with transaction.atomic():
            bail = _verrouiller_bail(bail.pk)

            if reference:
                deja_reglees = list(
                    bail.echeances.filter(paiements__reference=reference).distinct().order_by('date_echeance')
                )
                if deja_reglees:
                    logger.info(f"Règlement groupé {reference} déjà enregistré sur {bail}, ignoré")
                    return deja_reglees

            ouvertes = list(bail.echeances.ouvertes().order_by('date_echeance')[:nombre_mois])
            if not ouvertes:
                raise ParametreInvalideError(f"Aucune échéance ouverte à régler sur le bail {bail.pk}.")

            reglees = [
                PaiementService.enregistrer_paiement(
                    echeance, echeance.montant_restant, mode_paiement,
                    reference=reference, note=note, source=source,
                    date_paiement=date_paiement, aujourd_hui=aujourd_hui,
                )
                for echeance in ouvertes
            ]

        logger.info(f"Règlement groupé de {len(reglees)} mois sur {bail}")
        return reglees

    @staticmethod
    def contrepasser_paiement(paiement, motif):
        """
        Annule un paiement enregistré (chèque rejeté, erreur de saisie...).

        Le cumul de l'échéance est recalculé, les informations de règlement
        reprennent celles du dernier paiement restant et la quittance active
        éventuelle est annulée ; son numéro n'est jamais réattribué.

        Returns:
            Echeance: l'échéance à jour
        """
        with transaction.atomic():
            _verrouiller_bail(paiement.echeance.bail_id)
            paiement = Paiement.objects.select_related('echeance').get(pk=paiement.pk)
            echeance = paiement.echeance

            if paiement.est_contrepasse:
                return echeance
            if echeance.est_annulee:
                raise EcheanceClotureeError(echeance, StatutEcheance.ANNULE)

            paiement.contrepasse_le = timezone.now()
            paiement.motif_contrepassation = motif
            paiement.save(update_fields=['contrepasse_le', 'motif_contrepassation'])

            restants = echeance.paiements.filter(contrepasse_le__isnull=True)
            echeance.montant_paye -= paiement.montant
            premier = restants.order_by('date_paiement', 'pk').first()
            dernier = restants.order_by('enregistre_le', 'pk').last()
            echeance.date_paiement = premier.date_paiement if premier else None
            echeance.mode_paiement = dernier.mode_paiement if dernier else ""
            echeance.reference = (dernier.reference or "") if dernier else ""
            echeance.note = dernier.note if dernier else ""
            echeance.source_enregistrement = dernier.source_enregistrement if dernier else ""
            echeance.save(update_fields=[
                'montant_paye', 'date_paiement', 'mode_paiement', 'reference', 'note',
                'source_enregistrement',
            ])

            QuittanceService.annuler_active(echeance, f"Contrepassation : {motif}")

        logger.warning(f"Paiement #{paiement.pk} contrepassé sur {echeance}: {motif}")
        return echeance

    @staticmethod
    def annuler_echeance(echeance, motif, aujourd_hui=None):
        """Annulation administrative d'une échéance non soldée."""
        with transaction.atomic():
            _verrouiller_bail(echeance.bail_id)
            echeance = Echeance.objects.get(pk=echeance.pk)

            statut = echeance.statut_au(aujourd_hui)
            if statut == StatutEcheance.ANNULE:
                return echeance
            if statut == StatutEcheance.PAYE:
                raise EcheanceProtegeeError(
                    f"L'échéance du {echeance.date_echeance.strftime('%d/%m/%Y')} est payée : "
                    "elle ne peut pas être annulée."
                )

            echeance.annulee_le = timezone.now()
            echeance.motif_annulation = motif
            echeance.save(update_fields=['annulee_le', 'motif_annulation'])

        logger.info(f"Échéance annulée: {echeance} ({motif})")
        return echeance

    @staticmethod
    def cloturer_bail(bail, statut, date_effet, motif="", aujourd_hui=None):
        """
        Termine ou résilie un bail et annule les échéances postérieures non soldées.

        Rejouer la même clôture sur un bail déjà clos ne change rien ; un bail
        clos ne peut pas être clôturé sous un autre statut.

        Returns:
            int: Nombre d'échéances annulées
        """
        if statut not in Bail.STATUTS_CLOS:
            raise ParametreInvalideError(f"Statut de clôture invalide : {statut!r} (attendu TERMINE ou RESILIE).")

        with transaction.atomic():
            bail = _verrouiller_bail(bail.pk)
            if not bail.est_actif:
                if bail.statut == statut:
                    logger.info(f"{bail} déjà clôturé ({statut}), ignoré")
                    return 0
                raise BailInactifError(bail, (
                    f"Le bail {bail.pk} est déjà clos au statut {bail.statut} : "
                    f"il ne peut pas être clôturé en {statut}."
                ))

            bail.statut = statut
            if not bail.date_fin or bail.date_fin > date_effet:
                bail.date_fin = date_effet
            bail.save(update_fields=['statut', 'date_fin'])

            motif = motif or f"Bail {bail.get_statut_display().lower()} au {date_effet.strftime('%d/%m/%Y')}"
            annulees = 0
            for echeance in bail.echeances.filter(date_echeance__gt=date_effet, annulee_le__isnull=True):
                if est_terminal(echeance.statut_au(aujourd_hui)):
                    continue
                PaiementService.annuler_echeance(echeance, motif, aujourd_hui=aujourd_hui)
                annulees += 1

        logger.info(f"{bail} clôturé ({statut}) au {date_effet}: {annulees} échéance(s) annulée(s)")
        return annulees

    @staticmethod
    def enregistrer_caution(bail, montant, date_reception=None):
        """
        Enregistre le dépôt de garantie d'un bail.

        Un second appel avec le même montant renvoie le dépôt existant.

        Returns:
            DepotCaution
        """
        montant = _montant(montant)

        with transaction.atomic():
            bail = _verrouiller_bail(bail.pk)
            existante = DepotCaution.objects.filter(bail=bail).first()
            if existante:
                if existante.montant != montant:
                    raise CautionInvalideError(
                        f"Le bail {bail.pk} a déjà un dépôt de garantie de {existante.montant} "
                        f"(reçu : {montant})."
                    )
                return existante

            caution = DepotCaution.objects.create(
                bail=bail,
                montant=montant,
                date_reception=date_reception or timezone.localdate(),
            )

        logger.info(f"Dépôt de garantie de {montant} reçu pour {bail}")
        return caution

    @staticmethod
    def restituer_caution(bail, montant_restitue, motif_retenue="", date_restitution=None):
        """
        Restitue tout ou partie du dépôt de garantie à la sortie du locataire.

        Le statut (RESTITUE, PARTIELLEMENT_RESTITUE, RETENU) découle du montant
        rendu. Rejouer la même restitution renvoie le dépôt inchangé.

        Args:
            bail: Instance de Bail
            montant_restitue: Montant rendu, entre 0 et le montant du dépôt
            motif_retenue: Justification de la part retenue
            date_restitution: Date de la restitution (défaut : aujourd'hui)

        Returns:
            DepotCaution
        """
        try:
            montant_restitue = Decimal(str(montant_restitue))
        except (InvalidOperation, TypeError, ValueError):
            raise CautionInvalideError(f"Montant restitué invalide : {montant_restitue!r}.")
        if not montant_restitue.is_finite() or montant_restitue < 0:
            raise CautionInvalideError(f"Le montant restitué ne peut pas être négatif (reçu : {montant_restitue}).")

        with transaction.atomic():
            bail = _verrouiller_bail(bail.pk)
            caution = DepotCaution.objects.filter(bail=bail).first()
            if caution is None:
                raise CautionInvalideError(f"Aucun dépôt de garantie enregistré pour le bail {bail.pk}.")

            if caution.montant_restitue is not None:
                if caution.montant_restitue == montant_restitue:
                    return caution
                raise CautionInvalideError(
                    f"Le dépôt de garantie du bail {bail.pk} a déjà été restitué "
                    f"({caution.montant_restitue} sur {caution.montant})."
                )

            if montant_restitue > caution.montant:
                raise CautionInvalideError(
                    f"Le montant restitué ({montant_restitue}) dépasse le dépôt de garantie ({caution.montant})."
                )

            caution.montant_restitue = montant_restitue
            caution.motif_retenue = motif_retenue
            caution.date_restitution = date_restitution or timezone.localdate()
            caution.save(update_fields=['montant_restitue', 'motif_retenue', 'date_restitution'])

            evenements.emettre('CAUTION_RESTITUEE', {
                'bail_id': bail.pk,
                'contact_locataire': bail.locataire.contact_ref,
                'montant': caution.montant,
                'montant_restitue': caution.montant_restitue,
                'montant_retenu': caution.montant_retenu,
                'motif_retenue': caution.motif_retenue,
                'statut': str(caution.statut),
                'date_restitution': caution.date_restitution,
            })

        logger.info(f"Caution de {bail} restituée: {montant_restitue}/{caution.montant} ({caution.statut})")
        return caution


# ============================================================================
# CHARGES PARTAGÉES
# ============================================================================

class ChargeService:
    """Création des charges et suivi des parts de chaque colocataire."""

    @staticmethod
    def creer_charge(bien, categorie, description, montant_total, date_echeance, periode_debut,
                     periode_fin, mode_repartition, repartition_manuelle=None, participants=None,
                     colocation=None, poids=None):
        """
        Crée une charge et ses lignes de répartition en une seule transaction.

        Les participants sont, à défaut d'une liste explicite, les membres actifs
        de la colocation (leur quote-part sert de poids au prorata), ou les
        clés de la table manuelle.

        Args:
            bien: Instance de Bien
            categorie: Code de Charge.CATEGORIE_CHOICES
            montant_total: Montant de la charge
            mode_repartition: 'EQUAL', 'PRORATA' ou 'MANUAL'
            repartition_manuelle: dict {Locataire: montant} (MANUAL)
            participants: Liste de Locataire
            colocation: Instance de Colocation (optionnelle)
            poids: dict {Locataire: poids} (PRORATA)

        Returns:
            Charge: la charge créée avec ses lignes
        """
        if periode_debut > periode_fin:
            raise ChargeInvalideError("Le début de période doit précéder la fin de période.")
        if colocation is not None and colocation.bien_id != bien.pk:
            raise ChargeInvalideError("La colocation ne correspond pas au bien de la charge.")
        if categorie not in dict(Charge.CATEGORIE_CHOICES):
            raise ChargeInvalideError(f"Catégorie de charge inconnue : {categorie!r}.")

        if participants is None and colocation is not None:
            membres = list(colocation.membres.filter(actif=True).select_related('locataire').order_by('pk'))
            participants = [m.locataire for m in membres]
            if poids is None:
                poids = {m.locataire: m.quote_part for m in membres}
        if participants is None and repartition_manuelle:
            participants = list(repartition_manuelle)

        # Rejet éventuel avant toute écriture
        allocations = RepartitionCalculator.calculer(
            montant_total, participants or [], mode_repartition,
            repartition_manuelle=repartition_manuelle, poids=poids,
        )

        table_manuelle = None
        if mode_repartition == 'MANUAL':
            table_manuelle = [
                {'colocataire': a['participant'].pk, 'montant': str(a['montant'])}
                for a in allocations
            ]

        with transaction.atomic():
            charge = Charge.objects.create(
                bien=bien,
                colocation=colocation,
                categorie=categorie,
                description=description,
                montant_total=Decimal(str(montant_total)),
                date_echeance=date_echeance,
                periode_debut=periode_debut,
                periode_fin=periode_fin,
                mode_repartition=mode_repartition,
                repartition_manuelle=table_manuelle,
            )
            LigneRepartition.objects.bulk_create([
                LigneRepartition(charge=charge, colocataire=a['participant'], montant=a['montant'])
                for a in allocations
            ])

        logger.info(f"Charge créée: {charge} répartie {mode_repartition} sur {len(allocations)} colocataire(s)")
        return charge

    @staticmethod
    def envoyer_charge(charge):
        """Marque une charge comme envoyée aux colocataires."""
        with transaction.atomic():
            charge = Charge.objects.select_for_update().get(pk=charge.pk)
            if charge.date_envoi is None:
                charge.date_envoi = timezone.now()
                charge.save(update_fields=['date_envoi'])
        return charge

    @staticmethod
    def enregistrer_paiement_ligne(ligne, montant, reference=None, date_paiement=None):
        """
        Ajoute un paiement à la part d'un colocataire.

        Mêmes règles que pour les loyers : montant positif, part déjà payée
        refusée, référence rejouée sans effet.

        Returns:
            LigneRepartition: la ligne à jour
        """
        montant = _montant(montant)
        reference = reference or None
        date_paiement = date_paiement or timezone.localdate()

        with transaction.atomic():
            charge = Charge.objects.select_for_update().get(pk=ligne.charge_id)
            ligne = LigneRepartition.objects.select_related('colocataire').get(pk=ligne.pk)

            if reference and ligne.paiements.filter(reference=reference).exists():
                logger.info(f"Paiement {reference} déjà enregistré sur la ligne #{ligne.pk}, ignoré")
                return ligne
            if ligne.statut == StatutLigne.PAID:
                raise LigneSoldeeError(ligne)

            PaiementCharge.objects.create(
                ligne=ligne, montant=montant, date_paiement=date_paiement, reference=reference,
            )
            ligne.montant_paye += montant
            if ligne.date_paiement is None:
                ligne.date_paiement = date_paiement
            ligne.save(update_fields=['montant_paye', 'date_paiement'])

        logger.info(
            f"Paiement {montant} de {ligne.colocataire} sur {charge.description}: "
            f"ligne {ligne.statut}, charge {charge.statut}"
        )
        return ligne


# ============================================================================
# QUITTANCES
# ============================================================================

class QuittanceService:
    """Émission des quittances, numérotées par bailleur et par bien."""

    @staticmethod
    def prefixe():
        return getattr(settings, 'LOYERS_PREFIXE_QUITTANCE', 'QUI')

    @staticmethod
    def emettre(echeance, aujourd_hui=None):
        """
        Émet la quittance d'une échéance payée ou partiellement payée.

        Si une quittance active existe déjà, elle est renvoyée inchangée.

        Returns:
            Quittance
        """
        with transaction.atomic():
            _verrouiller_bail(echeance.bail_id)
            echeance = Echeance.objects.select_related(
                'bail__locataire', 'bail__bien__proprietaire'
            ).get(pk=echeance.pk)

            active = echeance.quittances.filter(annulee_le__isnull=True).first()
            if active:
                return active

            statut = echeance.statut_au(aujourd_hui)
            if statut not in STATUTS_QUITTANCABLES:
                raise QuittanceImpossibleError(echeance, statut)

            bien = echeance.bail.bien
            proprietaire = bien.proprietaire
            sequence = CompteurQuittance.prochain_numero(proprietaire, bien)
            precedente = echeance.quittances.filter(
                annulee_le__isnull=False, remplacee_par__isnull=True
            ).order_by('-sequence').first()

            quittance = Quittance.objects.create(
                echeance=echeance,
                proprietaire=proprietaire,
                bien=bien,
                sequence=sequence,
                numero=f"{QuittanceService.prefixe()}-{proprietaire.pk:04d}-{bien.pk:04d}-{sequence:06d}",
                snapshot=QuittanceService.construire_snapshot(echeance, statut),
                remplace=precedente,
            )
            evenements.emettre('QUITTANCE_EMISE', QuittanceService.payload(quittance))

        logger.info(f"Quittance {quittance.numero} émise pour {echeance}")
        return quittance

    @staticmethod
    def construire_snapshot(echeance, statut):
        bail = echeance.bail
        bien = bail.bien
        proprietaire = bien.proprietaire
        locataire = bail.locataire
        d = echeance.date_echeance

        return {
            'periode': {
                'date_echeance': d.isoformat(),
                'libelle': f"{MOIS_FR[d.month]} {d.year}",
            },
            'statut': str(statut),
            'montant_du': str(echeance.montant_du),
            'montant_paye': str(echeance.montant_paye),
            'reste_a_payer': str(echeance.montant_restant),
            'date_paiement': echeance.date_paiement.isoformat() if echeance.date_paiement else None,
            'mode_paiement': echeance.mode_paiement,
            'reference': echeance.reference,
            'bailleur': {
                'nom': proprietaire.nom,
                'adresse': proprietaire.adresse,
                'email': proprietaire.email,
                'telephone': proprietaire.telephone,
            },
            'locataire': {
                'nom': locataire.nom,
                'prenom': locataire.prenom,
                'email': locataire.email,
                'telephone': locataire.telephone,
            },
            'bien': {
                'titre': bien.titre,
                'adresse': bien.adresse,
                'ville': bien.ville,
            },
        }

    @staticmethod
    def payload(quittance):
        """Données structurées transmises au moteur de rendu de documents."""
        return {
            'quittance_id': quittance.pk,
            'numero': quittance.numero,
            'echeance_id': quittance.echeance_id,
            'bail_id': quittance.echeance.bail_id,
            'date_emission': quittance.date_emission.isoformat(),
            'remplace': quittance.remplace.numero if quittance.remplace else None,
            **quittance.snapshot,
        }

    @staticmethod
    def annuler(quittance, motif):
        """Annule une quittance ; son numéro reste consommé."""
        with transaction.atomic():
            quittance = Quittance.objects.select_for_update().get(pk=quittance.pk)
            if not quittance.est_active:
                return quittance

            quittance.annulee_le = timezone.now()
            quittance.motif_annulation = motif
            quittance.save(update_fields=['annulee_le', 'motif_annulation'])
            evenements.emettre('QUITTANCE_ANNULEE', {
                'quittance_id': quittance.pk,
                'numero': quittance.numero,
                'echeance_id': quittance.echeance_id,
                'motif': motif,
            })

        logger.warning(f"Quittance {quittance.numero} annulée: {motif}")
        return quittance

    @staticmethod
    def annuler_active(echeance, motif):
        active = echeance.quittances.filter(annulee_le__isnull=True).first()
        if active:
            return QuittanceService.annuler(active, motif)
        return None


# ============================================================================
# RELANCES
# ============================================================================

class RelanceService:
    """Décision de relance ; l'envoi appartient au service de notification."""

    @staticmethod
    def echeances_a_relancer(aujourd_hui=None):
        if aujourd_hui is None:
            aujourd_hui = timezone.localdate()

        candidates = Echeance.objects.ouvertes().filter(
            date_echeance__lte=aujourd_hui
        ).select_related('bail__locataire').order_by('date_echeance')

        return [e for e in candidates if doit_relancer(e, aujourd_hui)]

    @staticmethod
    def emettre_relances(aujourd_hui=None):
        """
        Émet un événement RELANCE_ECHEANCE par échéance en attente ou en retard.

        Returns:
            list: Événements créés
        """
        if aujourd_hui is None:
            aujourd_hui = timezone.localdate()

        with transaction.atomic():
            crees = [
                evenements.emettre('RELANCE_ECHEANCE', {
                    'bail_id': echeance.bail_id,
                    'echeance_id': echeance.pk,
                    'contact_locataire': echeance.bail.locataire.contact_ref,
                    'statut': str(echeance.statut_au(aujourd_hui)),
                    'date_echeance': echeance.date_echeance.isoformat(),
                    'montant_restant': str(echeance.montant_restant),
                })
                for echeance in RelanceService.echeances_a_relancer(aujourd_hui)
            ]

        logger.info(f"{len(crees)} relance(s) émise(s) au {aujourd_hui}")
        return crees
