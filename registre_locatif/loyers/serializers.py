from rest_framework import serializers
from .models import (
    Bail, Bien, Charge, Colocation, DepotCaution, Echeance, LigneRepartition, Locataire, Paiement,
    Quittance,
)

class PaiementSerializer(serializers.ModelSerializer):
    class Meta:
        model = Paiement
        fields = ['id', 'montant', 'date_paiement', 'mode_paiement', 'reference', 'note',
                  'source_enregistrement', 'enregistre_le', 'contrepasse_le', 'motif_contrepassation']
        read_only_fields = fields

class EcheanceSerializer(serializers.ModelSerializer):
    statut = serializers.SerializerMethodField()
    montant_restant = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Echeance
        fields = ['id', 'bail', 'date_echeance', 'montant_du', 'montant_paye', 'montant_restant',
                  'statut', 'date_paiement', 'mode_paiement', 'reference', 'note',
                  'source_enregistrement', 'annulee_le', 'motif_annulation']
        read_only_fields = fields

    def get_statut(self, obj):
        return obj.statut_au(self.context.get('aujourd_hui'))

class BailSerializer(serializers.ModelSerializer):
    proprietaire = serializers.PrimaryKeyRelatedField(source='bien.proprietaire', read_only=True)

    class Meta:
        model = Bail
        fields = ['id', 'locataire', 'bien', 'proprietaire', 'date_debut', 'date_fin',
                  'montant_loyer', 'jour_echeance', 'statut', 'date_creation']
        read_only_fields = ['date_creation']

class DepotCautionSerializer(serializers.ModelSerializer):
    statut = serializers.CharField(read_only=True)
    montant_retenu = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = DepotCaution
        fields = ['id', 'bail', 'montant', 'statut', 'date_reception', 'date_restitution',
                  'montant_restitue', 'montant_retenu', 'motif_retenue']
        read_only_fields = fields

class SoldeSerializer(serializers.Serializer):
    total_echeances = serializers.IntegerField()
    nb_payees = serializers.IntegerField()
    nb_en_attente = serializers.IntegerField()
    nb_en_retard = serializers.IntegerField()
    nb_a_venir = serializers.IntegerField()
    nb_partielles = serializers.IntegerField()
    montant_paye = serializers.DecimalField(max_digits=14, decimal_places=2)
    montant_en_retard = serializers.DecimalField(max_digits=14, decimal_places=2)
    montant_total_du = serializers.DecimalField(max_digits=14, decimal_places=2)
    solde = serializers.DecimalField(max_digits=14, decimal_places=2)

class QuittanceSerializer(serializers.ModelSerializer):
    remplace = serializers.SlugRelatedField(slug_field='numero', read_only=True)

    class Meta:
        model = Quittance
        fields = ['id', 'numero', 'sequence', 'echeance', 'proprietaire', 'bien', 'date_emission',
                  'snapshot', 'annulee_le', 'motif_annulation', 'remplace']
        read_only_fields = fields

class LigneRepartitionSerializer(serializers.ModelSerializer):
    statut = serializers.CharField(read_only=True)
    montant_restant = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = LigneRepartition
        fields = ['id', 'charge', 'colocataire', 'montant', 'montant_paye', 'montant_restant',
                  'statut', 'date_paiement']
        read_only_fields = fields

class ChargeSerializer(serializers.ModelSerializer):
    lignes = LigneRepartitionSerializer(many=True, read_only=True)
    statut = serializers.CharField(read_only=True)
    montant_paye = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Charge
        fields = ['id', 'bien', 'colocation', 'categorie', 'description', 'montant_total',
                  'montant_paye', 'statut', 'date_creation', 'date_echeance', 'periode_debut',
                  'periode_fin', 'mode_repartition', 'repartition_manuelle', 'date_envoi', 'lignes']
        read_only_fields = ['date_creation', 'date_envoi', 'repartition_manuelle']


# === ENTRÉES DES ACTIONS ===

class PaiementInputSerializer(serializers.Serializer):
    montant = serializers.DecimalField(max_digits=12, decimal_places=2)
    mode_paiement = serializers.CharField(max_length=20)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True)
    note = serializers.CharField(required=False, allow_blank=True, default="")
    source = serializers.CharField(max_length=10, required=False, default='OWNER')
    date_paiement = serializers.DateField(required=False)

class PaiementMultipleInputSerializer(serializers.Serializer):
    nombre_mois = serializers.IntegerField()
    mode_paiement = serializers.CharField(max_length=20)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True)
    note = serializers.CharField(required=False, allow_blank=True, default="")
    source = serializers.CharField(max_length=10, required=False, default='OWNER')
    date_paiement = serializers.DateField(required=False)

class ProlongationInputSerializer(serializers.Serializer):
    annee = serializers.IntegerField(min_value=1900, max_value=9999)

class ClotureInputSerializer(serializers.Serializer):
    statut = serializers.ChoiceField(choices=Bail.STATUTS_CLOS)
    date_effet = serializers.DateField()
    motif = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")

class CautionInputSerializer(serializers.Serializer):
    montant = serializers.DecimalField(max_digits=12, decimal_places=2)
    date_reception = serializers.DateField(required=False)

class RestitutionCautionInputSerializer(serializers.Serializer):
    montant_restitue = serializers.DecimalField(max_digits=12, decimal_places=2)
    motif_retenue = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    date_restitution = serializers.DateField(required=False)

class AnnulationInputSerializer(serializers.Serializer):
    motif = serializers.CharField(max_length=200)

class PaiementLigneInputSerializer(serializers.Serializer):
    montant = serializers.DecimalField(max_digits=12, decimal_places=2)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True)
    date_paiement = serializers.DateField(required=False)

class ChargeInputSerializer(serializers.Serializer):
    """Création d'une charge : les lignes sont calculées, jamais saisies."""
    bien = serializers.PrimaryKeyRelatedField(queryset=Bien.objects.all())
    colocation = serializers.PrimaryKeyRelatedField(
        queryset=Colocation.objects.all(),
        required=False, allow_null=True,
    )
    categorie = serializers.ChoiceField(choices=Charge.CATEGORIE_CHOICES, default='AUTRE')
    description = serializers.CharField(max_length=255)
    montant_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    date_echeance = serializers.DateField()
    periode_debut = serializers.DateField()
    periode_fin = serializers.DateField()
    mode_repartition = serializers.ChoiceField(choices=Charge.MODE_REPARTITION_CHOICES)
    participants = serializers.PrimaryKeyRelatedField(
        queryset=Locataire.objects.all(), many=True, required=False,
    )
    repartition_manuelle = serializers.ListField(
        child=serializers.DictField(), required=False,
        help_text="Liste de {colocataire: id, montant: montant}",
    )
    poids = serializers.ListField(
        child=serializers.DictField(), required=False,
        help_text="Liste de {colocataire: id, poids: poids}",
    )

    def _table(self, lignes, cle):
        ids = [ligne.get('colocataire') for ligne in lignes]
        if len(set(ids)) != len(ids):
            raise serializers.ValidationError("Un colocataire apparaît plusieurs fois.")
        locataires = Locataire.objects.in_bulk(ids)
        manquants = [i for i in ids if i not in locataires]
        if manquants:
            raise serializers.ValidationError(f"Colocataire(s) inconnu(s) : {manquants}")
        try:
            return {locataires[ligne['colocataire']]: ligne[cle] for ligne in lignes}
        except KeyError:
            raise serializers.ValidationError(f"Chaque ligne doit préciser 'colocataire' et '{cle}'.")

    def validate_repartition_manuelle(self, value):
        return self._table(value, 'montant')

    def validate_poids(self, value):
        return self._table(value, 'poids')
