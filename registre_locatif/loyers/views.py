"""
API REST du registre locatif.

Les actions métier passent toutes par loyers.services ; une violation d'invariant
(RegistreError) devient une réponse 400 {"erreur": ..., "code": ...}.
"""
import logging

from django.db.models import Prefetch
from django.utils import timezone
from rest_framework import mixins, serializers, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from .calculators import SoldeCalculator
from .exceptions import RegistreError
from .models import Bail, Charge, DepotCaution, Echeance, LigneRepartition, Paiement, Quittance
from .serializers import (
    AnnulationInputSerializer, BailSerializer, CautionInputSerializer, ChargeInputSerializer,
    ChargeSerializer, ClotureInputSerializer, DepotCautionSerializer, EcheanceSerializer,
    LigneRepartitionSerializer, PaiementInputSerializer, PaiementLigneInputSerializer,
    PaiementMultipleInputSerializer, PaiementSerializer, ProlongationInputSerializer,
    QuittanceSerializer, RestitutionCautionInputSerializer, SoldeSerializer,
)
from .services import ChargeService, EcheancierService, PaiementService, QuittanceService

# Configuration logging
logger = logging.getLogger(__name__)


# ============================================================================
# HELPERS
# ============================================================================

def reponse_erreur(erreur, contexte):
    logger.error(f"Erreur {contexte}: [{erreur.code}] {erreur.message}")
    return Response({'erreur': erreur.message, 'code': erreur.code}, status=status.HTTP_400_BAD_REQUEST)


def date_reference(request):
    """Date de calcul des statuts : paramètre ?date=AAAA-MM-JJ, sinon aujourd'hui."""
    valeur = request.query_params.get('date')
    if not valeur:
        return timezone.localdate()
    return serializers.DateField().to_internal_value(valeur)


def valider(serializer_class, request):
    serializer = serializer_class(data=request.data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


# ============================================================================
# BAUX
# ============================================================================

class BailViewSet(viewsets.ModelViewSet):
    queryset = Bail.objects.select_related('bien__proprietaire', 'locataire').order_by('pk')
    serializer_class = BailSerializer

    def destroy(self, request, *args, **kwargs):
        bail = self.get_object()
        if bail.echeances.exists():
            return Response(
                {'erreur': "Un bail avec un échéancier ne peut pas être supprimé : clôturez-le.",
                 'code': 'ECHEANCE_PROTEGEE'},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return super().destroy(request, *args, **kwargs)

    @action(detail=True, methods=['get', 'post'])
    def echeancier(self, request, pk=None):
        """GET : échéances avec statut courant. POST : génère l'échéancier initial."""
        bail = self.get_object()
        aujourd_hui = date_reference(request)

        if request.method == 'POST':
            logger.info(f"Demande génération échéancier pour bail {pk} par user {request.user}")
            try:
                echeances = EcheancierService.generer_echeancier(bail)
            except RegistreError as e:
                return reponse_erreur(e, f"génération échéancier bail {pk}")
        else:
            echeances = bail.echeances.order_by('date_echeance')

        serializer = EcheanceSerializer(echeances, many=True, context={'aujourd_hui': aujourd_hui})
        return Response(serializer.data)

    @action(detail=True, methods=['post'])
    def prolonger(self, request, pk=None):
        bail = self.get_object()
        donnees = valider(ProlongationInputSerializer, request)
        try:
            creees = EcheancierService.prolonger(bail, donnees['annee'])
        except RegistreError as e:
            return reponse_erreur(e, f"prolongation bail {pk}")

        serializer = EcheanceSerializer(creees, many=True, context={'aujourd_hui': date_reference(request)})
        return Response({'annee': donnees['annee'], 'creees': serializer.data})

    @action(detail=True, methods=['get'])
    def solde(self, request, pk=None):
        bail = self.get_object()
        synthese = SoldeCalculator.calculer(bail, aujourd_hui=date_reference(request))
        return Response(SoldeSerializer(synthese).data)

    @action(detail=True, methods=['get'])
    def quittances(self, request, pk=None):
        bail = self.get_object()
        quittances = Quittance.objects.filter(echeance__bail=bail).select_related('remplace')
        return Response(QuittanceSerializer(quittances, many=True).data)

    @action(detail=True, methods=['post'])
    def payer_multiple(self, request, pk=None):
        bail = self.get_object()
        donnees = valider(PaiementMultipleInputSerializer, request)
        aujourd_hui = date_reference(request)
        try:
            reglees = PaiementService.enregistrer_paiement_multiple(
                bail, donnees['nombre_mois'], donnees['mode_paiement'],
                reference=donnees.get('reference'), note=donnees['note'], source=donnees['source'],
                date_paiement=donnees.get('date_paiement'), aujourd_hui=aujourd_hui,
            )
        except RegistreError as e:
            return reponse_erreur(e, f"règlement groupé bail {pk}")

        return Response(EcheanceSerializer(reglees, many=True, context={'aujourd_hui': aujourd_hui}).data)

    @action(detail=True, methods=['post'])
    def cloturer(self, request, pk=None):
        bail = self.get_object()
        donnees = valider(ClotureInputSerializer, request)
        try:
            annulees = PaiementService.cloturer_bail(
                bail, donnees['statut'], donnees['date_effet'], motif=donnees['motif'],
                aujourd_hui=date_reference(request),
            )
        except RegistreError as e:
            return reponse_erreur(e, f"clôture bail {pk}")

        bail.refresh_from_db()
        return Response({'bail': BailSerializer(bail).data, 'echeances_annulees': annulees})

    @action(detail=True, methods=['get', 'post'])
    def caution(self, request, pk=None):
        """GET : dépôt de garantie du bail. POST : enregistre le dépôt reçu."""
        bail = self.get_object()

        if request.method == 'POST':
            donnees = valider(CautionInputSerializer, request)
            try:
                caution = PaiementService.enregistrer_caution(
                    bail, donnees['montant'], date_reception=donnees.get('date_reception'),
                )
            except RegistreError as e:
                return reponse_erreur(e, f"dépôt de garantie bail {pk}")
            return Response(DepotCautionSerializer(caution).data)

        caution = DepotCaution.objects.filter(bail=bail).first()
        if caution is None:
            return Response(
                {'erreur': f"Aucun dépôt de garantie enregistré pour le bail {pk}.", 'code': 'CAUTION_INVALIDE'},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(DepotCautionSerializer(caution).data)

    @action(detail=True, methods=['post'], url_path='caution/restituer')
    def restituer_caution(self, request, pk=None):
        bail = self.get_object()
        donnees = valider(RestitutionCautionInputSerializer, request)
        logger.info(f"Restitution de caution sur bail {pk} par user {request.user}")
        try:
            caution = PaiementService.restituer_caution(
                bail, donnees['montant_restitue'], motif_retenue=donnees['motif_retenue'],
                date_restitution=donnees.get('date_restitution'),
            )
        except RegistreError as e:
            return reponse_erreur(e, f"restitution caution bail {pk}")
        return Response(DepotCautionSerializer(caution).data)


# ============================================================================
# ÉCHÉANCES ET PAIEMENTS
# ============================================================================

class EcheanceViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Echeance.objects.select_related('bail').order_by('bail', 'date_echeance')
    serializer_class = EcheanceSerializer

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['aujourd_hui'] = date_reference(self.request)
        return context

    @action(detail=True, methods=['post'])
    def payer(self, request, pk=None):
        echeance = self.get_object()
        donnees = valider(PaiementInputSerializer, request)
        aujourd_hui = date_reference(request)
        logger.info(f"Paiement de {donnees['montant']} sur échéance {pk} par user {request.user}")
        try:
            echeance = PaiementService.enregistrer_paiement(
                echeance, donnees['montant'], donnees['mode_paiement'],
                reference=donnees.get('reference'), note=donnees['note'], source=donnees['source'],
                date_paiement=donnees.get('date_paiement'), aujourd_hui=aujourd_hui,
            )
        except RegistreError as e:
            return reponse_erreur(e, f"paiement échéance {pk}")

        return Response(EcheanceSerializer(echeance, context={'aujourd_hui': aujourd_hui}).data)

    @action(detail=True, methods=['post'])
    def quittance(self, request, pk=None):
        echeance = self.get_object()
        try:
            quittance = QuittanceService.emettre(echeance, aujourd_hui=date_reference(request))
        except RegistreError as e:
            return reponse_erreur(e, f"émission quittance échéance {pk}")
        return Response(QuittanceSerializer(quittance).data)

    @action(detail=True, methods=['post'])
    def annuler(self, request, pk=None):
        echeance = self.get_object()
        donnees = valider(AnnulationInputSerializer, request)
        aujourd_hui = date_reference(request)
        try:
            echeance = PaiementService.annuler_echeance(echeance, donnees['motif'], aujourd_hui=aujourd_hui)
        except RegistreError as e:
            return reponse_erreur(e, f"annulation échéance {pk}")
        return Response(EcheanceSerializer(echeance, context={'aujourd_hui': aujourd_hui}).data)


class PaiementViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Paiement.objects.select_related('echeance').order_by('pk')
    serializer_class = PaiementSerializer

    @action(detail=True, methods=['post'])
    def contrepasser(self, request, pk=None):
        paiement = self.get_object()
        donnees = valider(AnnulationInputSerializer, request)
        aujourd_hui = date_reference(request)
        logger.info(f"Contrepassation du paiement {pk} par user {request.user}")
        try:
            echeance = PaiementService.contrepasser_paiement(paiement, donnees['motif'])
        except RegistreError as e:
            return reponse_erreur(e, f"contrepassation paiement {pk}")
        return Response(EcheanceSerializer(echeance, context={'aujourd_hui': aujourd_hui}).data)


class QuittanceViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Quittance.objects.select_related('remplace').order_by('-date_emission')
    serializer_class = QuittanceSerializer

    @action(detail=True, methods=['post'])
    def annuler(self, request, pk=None):
        quittance = self.get_object()
        donnees = valider(AnnulationInputSerializer, request)
        quittance = QuittanceService.annuler(quittance, donnees['motif'])
        return Response(QuittanceSerializer(quittance).data)


# ============================================================================
# CHARGES PARTAGÉES
# ============================================================================

class ChargeViewSet(mixins.CreateModelMixin,
                    mixins.ListModelMixin,
                    mixins.RetrieveModelMixin,
                    viewsets.GenericViewSet):
    queryset = Charge.objects.prefetch_related(
        Prefetch('lignes', queryset=LigneRepartition.objects.order_by('pk'))
    ).order_by('-date_creation')
    serializer_class = ChargeSerializer

    def create(self, request, *args, **kwargs):
        donnees = valider(ChargeInputSerializer, request)
        try:
            charge = ChargeService.creer_charge(
                donnees['bien'], donnees['categorie'], donnees['description'],
                donnees['montant_total'], donnees['date_echeance'],
                donnees['periode_debut'], donnees['periode_fin'], donnees['mode_repartition'],
                repartition_manuelle=donnees.get('repartition_manuelle'),
                participants=donnees.get('participants'),
                colocation=donnees.get('colocation'),
                poids=donnees.get('poids'),
            )
        except RegistreError as e:
            return reponse_erreur(e, "création charge")

        return Response(ChargeSerializer(charge).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def envoyer(self, request, pk=None):
        charge = ChargeService.envoyer_charge(self.get_object())
        return Response(ChargeSerializer(charge).data)


class LigneRepartitionViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = LigneRepartition.objects.select_related('charge', 'colocataire').order_by('pk')
    serializer_class = LigneRepartitionSerializer

    @action(detail=True, methods=['post'])
    def payer(self, request, pk=None):
        ligne = self.get_object()
        donnees = valider(PaiementLigneInputSerializer, request)
        try:
            ligne = ChargeService.enregistrer_paiement_ligne(
                ligne, donnees['montant'], reference=donnees.get('reference'),
                date_paiement=donnees.get('date_paiement'),
            )
        except RegistreError as e:
            return reponse_erreur(e, f"paiement ligne {pk}")

        return Response({
            'ligne': LigneRepartitionSerializer(ligne).data,
            'statut_charge': ligne.charge.statut,
        })
