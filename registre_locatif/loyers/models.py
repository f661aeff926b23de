from decimal import Decimal

from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models, transaction
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import EcheanceProtegeeError
from .statuts import (
    StatutCaution, StatutEcheance, calculer_statut, calculer_statut_caution, calculer_statut_charge,
    calculer_statut_ligne,
)


# =============================================================================
# RÉFÉRENTIEL (identités lues par le registre)
# =============================================================================

class Proprietaire(models.Model):
    nom = models.CharField(max_length=200, verbose_name="Nom ou Raison Sociale")
    email = models.EmailField(blank=True)
    telephone = models.CharField(max_length=30, blank=True)
    adresse = models.TextField(blank=True)

    def __str__(self):
        return self.nom

    class Meta:
        verbose_name = "Propriétaire"
        verbose_name_plural = "Propriétaires"


class Bien(models.Model):
    proprietaire = models.ForeignKey(Proprietaire, on_delete=models.PROTECT, related_name='biens', verbose_name="Propriétaire / Bailleur")
    titre = models.CharField(max_length=200)
    adresse = models.TextField(blank=True)
    ville = models.CharField(max_length=100, blank=True)

    def __str__(self):
        return f"{self.titre} - {self.ville}" if self.ville else self.titre

    class Meta:
        verbose_name = "Bien"
        verbose_name_plural = "Biens"


class Locataire(models.Model):
    nom = models.CharField(max_length=100)
    prenom = models.CharField(max_length=100, blank=True)
    email = models.EmailField(blank=True)
    telephone = models.CharField(max_length=30, blank=True)

    @property
    def contact_ref(self):
        """Référence transmise au service de notification."""
        return self.telephone or self.email or f"locataire-{self.pk}"

    def __str__(self):
        return f"{self.nom} {self.prenom}".strip()

    class Meta:
        verbose_name = "Locataire"
        verbose_name_plural = "Locataires"


class Colocation(models.Model):
    """Groupe de colocataires partageant les charges d'un bien."""
    bien = models.ForeignKey(Bien, on_delete=models.PROTECT, related_name='colocations')
    nom = models.CharField(max_length=200)

    def __str__(self):
        return f"{self.nom} ({self.bien.titre})"

    class Meta:
        verbose_name = "Colocation"
        verbose_name_plural = "Colocations"


class Colocataire(models.Model):
    colocation = models.ForeignKey(Colocation, on_delete=models.CASCADE, related_name='membres')
    locataire = models.ForeignKey(Locataire, on_delete=models.PROTECT, related_name='colocations')
    quote_part = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('1.00'), verbose_name="Quote-part", help_text="Poids utilisé pour la répartition au prorata")
    actif = models.BooleanField(default=True)

    def __str__(self):
        return f"{self.locataire} : {self.quote_part}"

    class Meta:
        verbose_name = "Colocataire"
        verbose_name_plural = "Colocataires"
        unique_together = ('colocation', 'locataire')


# =============================================================================
# BAUX ET ÉCHÉANCIER
# =============================================================================

class Bail(models.Model):
    STATUT_CHOICES = [
        ('ACTIF', 'Actif'),
        ('EN_PREAVIS', 'En préavis'),
        ('EN_RENOUVELLEMENT', 'En renouvellement'),
        ('TERMINE', 'Terminé'),
        ('RESILIE', 'Résilié'),
    ]
    STATUTS_ACTIFS = ('ACTIF', 'EN_PREAVIS', 'EN_RENOUVELLEMENT')
    STATUTS_CLOS = ('TERMINE', 'RESILIE')

    locataire = models.ForeignKey(Locataire, on_delete=models.PROTECT, related_name='baux')
    bien = models.ForeignKey(Bien, on_delete=models.PROTECT, related_name='baux')
    date_debut = models.DateField(verbose_name="Date d'entrée")
    date_fin = models.DateField(null=True, blank=True, verbose_name="Date de sortie")
    montant_loyer = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Loyer mensuel")
    jour_echeance = models.PositiveSmallIntegerField(
        default=5,
        validators=[MinValueValidator(1), MaxValueValidator(28)],
        verbose_name="Jour d'échéance",
        help_text="Jour du mois où le loyer est exigible (1 à 28)",
    )
    statut = models.CharField(max_length=20, choices=STATUT_CHOICES, default='ACTIF')
    date_creation = models.DateTimeField(auto_now_add=True)

    @property
    def proprietaire(self):
        return self.bien.proprietaire

    @property
    def est_actif(self):
        return self.statut in self.STATUTS_ACTIFS

    def __str__(self):
        return f"Bail {self.bien} - {self.locataire} ({self.date_debut})"

    class Meta:
        verbose_name = "Bail"
        verbose_name_plural = "Baux"


class EcheanceQuerySet(models.QuerySet):

    def delete(self):
        raise EcheanceProtegeeError("Les échéances ne sont jamais supprimées : annulez-les.")

    def ouvertes(self):
        """Échéances non annulées et pas encore intégralement payées."""
        return self.filter(annulee_le__isnull=True, montant_paye__lt=F('montant_du'))


class Echeance(models.Model):
    """Une échéance de loyer. Le statut est dérivé, jamais stocké."""
    MODE_CHOICES = [
        ('VIREMENT', 'Virement'),
        ('ESPECES', 'Espèces'),
        ('CHEQUE', 'Chèque'),
        ('MOBILE_MONEY', 'Mobile Money'),
        ('EN_LIGNE', 'Paiement en ligne'),
        ('AUTRE', 'Autre'),
    ]
    SOURCE_CHOICES = [
        ('TENANT', 'Locataire'),
        ('OWNER', 'Propriétaire'),
    ]

    bail = models.ForeignKey(Bail, on_delete=models.PROTECT, related_name='echeances')
    date_echeance = models.DateField(verbose_name="Date d'échéance")
    montant_du = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Montant dû")
    montant_paye = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), verbose_name="Montant payé (cumul)")
    date_paiement = models.DateField(null=True, blank=True, verbose_name="Date de paiement")
    mode_paiement = models.CharField(max_length=20, choices=MODE_CHOICES, blank=True)
    reference = models.CharField(max_length=100, blank=True)
    note = models.TextField(blank=True)
    source_enregistrement = models.CharField(max_length=10, choices=SOURCE_CHOICES, blank=True, verbose_name="Enregistré par")

    annulee_le = models.DateTimeField(null=True, blank=True, verbose_name="Annulée le")
    motif_annulation = models.CharField(max_length=200, blank=True)

    objects = EcheanceQuerySet.as_manager()

    @property
    def est_annulee(self):
        return self.annulee_le is not None

    @property
    def montant_restant(self):
        return max(self.montant_du - self.montant_paye, Decimal('0.00'))

    def statut_au(self, aujourd_hui=None):
        if aujourd_hui is None:
            aujourd_hui = timezone.localdate()
        return calculer_statut(
            self.date_echeance, self.montant_paye, self.montant_du, aujourd_hui,
            annulee=self.est_annulee,
        )

    @property
    def statut(self):
        return self.statut_au()

    def get_statut_display(self):
        return StatutEcheance(self.statut).label

    def delete(self, *args, **kwargs):
        raise EcheanceProtegeeError("Les échéances ne sont jamais supprimées : annulez-les.")

    def __str__(self):
        return f"Échéance {self.date_echeance.strftime('%d/%m/%Y')} - {self.bail}"

    class Meta:
        verbose_name = "Échéance"
        verbose_name_plural = "Échéances"
        ordering = ['bail', 'date_echeance']
        constraints = [
            models.UniqueConstraint(fields=['bail', 'date_echeance'], name='echeance_unique_par_bail_et_date'),
        ]


class Paiement(models.Model):
    """Trace de chaque paiement reçu, clé d'idempotence (échéance, référence)."""
    echeance = models.ForeignKey(Echeance, on_delete=models.PROTECT, related_name='paiements')
    montant = models.DecimalField(max_digits=12, decimal_places=2)
    date_paiement = models.DateField()
    mode_paiement = models.CharField(max_length=20, choices=Echeance.MODE_CHOICES)
    reference = models.CharField(max_length=100, null=True, blank=True)
    note = models.TextField(blank=True)
    source_enregistrement = models.CharField(max_length=10, choices=Echeance.SOURCE_CHOICES)
    enregistre_le = models.DateTimeField(auto_now_add=True)

    contrepasse_le = models.DateTimeField(null=True, blank=True, verbose_name="Contrepassé le")
    motif_contrepassation = models.CharField(max_length=200, blank=True)

    @property
    def est_contrepasse(self):
        return self.contrepasse_le is not None

    def __str__(self):
        return f"{self.montant} ({self.get_mode_paiement_display()}) - {self.echeance}"

    class Meta:
        verbose_name = "Paiement"
        verbose_name_plural = "Paiements"
        ordering = ['enregistre_le']
        constraints = [
            models.UniqueConstraint(
                fields=['echeance', 'reference'],
                condition=Q(reference__isnull=False),
                name='paiement_reference_unique_par_echeance',
            ),
        ]


class DepotCaution(models.Model):
    """Dépôt de garantie versé à l'entrée, restitué en tout ou partie à la sortie."""
    bail = models.OneToOneField(Bail, on_delete=models.PROTECT, related_name='caution')
    montant = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Montant du dépôt")
    date_reception = models.DateField(verbose_name="Reçu le")
    date_restitution = models.DateField(null=True, blank=True, verbose_name="Restitué le")
    montant_restitue = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True,
                                           verbose_name="Montant restitué")
    motif_retenue = models.CharField(max_length=255, blank=True, verbose_name="Motif de la retenue")

    @property
    def statut(self):
        return calculer_statut_caution(self.montant, self.montant_restitue)

    @property
    def montant_retenu(self):
        if self.montant_restitue is None:
            return Decimal('0.00')
        return max(self.montant - self.montant_restitue, Decimal('0.00'))

    def get_statut_display(self):
        return StatutCaution(self.statut).label

    def __str__(self):
        return f"Caution {self.montant} - {self.bail}"

    class Meta:
        verbose_name = "Dépôt de garantie"
        verbose_name_plural = "Dépôts de garantie"


# =============================================================================
# CHARGES PARTAGÉES
# =============================================================================

class Charge(models.Model):
    CATEGORIE_CHOICES = [
        ('EAU', 'Eau'),
        ('ELECTRICITE', 'Électricité'),
        ('GAZ', 'Gaz'),
        ('INTERNET', 'Internet'),
        ('ASSURANCE', 'Assurance'),
        ('ENTRETIEN', 'Entretien'),
        ('MENAGE', 'Ménage'),
        ('ASCENSEUR', 'Ascenseur'),
        ('CHAUFFAGE', 'Chauffage'),
        ('AUTRE', 'Autre'),
    ]
    MODE_REPARTITION_CHOICES = [
        ('EQUAL', 'Égalitaire'),
        ('PRORATA', 'Au prorata'),
        ('MANUAL', 'Manuelle'),
    ]

    bien = models.ForeignKey(Bien, on_delete=models.PROTECT, related_name='charges')
    colocation = models.ForeignKey(Colocation, on_delete=models.PROTECT, null=True, blank=True, related_name='charges')
    categorie = models.CharField(max_length=20, choices=CATEGORIE_CHOICES, default='AUTRE')
    description = models.CharField(max_length=255)
    montant_total = models.DecimalField(max_digits=12, decimal_places=2)
    date_creation = models.DateTimeField(auto_now_add=True)
    date_echeance = models.DateField()
    periode_debut = models.DateField()
    periode_fin = models.DateField()
    mode_repartition = models.CharField(max_length=10, choices=MODE_REPARTITION_CHOICES, default='EQUAL')
    repartition_manuelle = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    date_envoi = models.DateTimeField(null=True, blank=True, verbose_name="Envoyée le")

    @property
    def statut(self):
        return calculer_statut_charge(
            (ligne.statut for ligne in self.lignes.all()),
            envoyee=self.date_envoi is not None,
        )

    @property
    def montant_paye(self):
        return sum((ligne.montant_paye for ligne in self.lignes.all()), Decimal('0.00'))

    def __str__(self):
        return f"{self.get_categorie_display()} - {self.description} ({self.montant_total})"

    class Meta:
        verbose_name = "Charge"
        verbose_name_plural = "Charges"
        ordering = ['-date_creation']


class LigneRepartition(models.Model):
    """Part d'un colocataire sur une charge."""
    charge = models.ForeignKey(Charge, on_delete=models.PROTECT, related_name='lignes')
    colocataire = models.ForeignKey(Locataire, on_delete=models.PROTECT, related_name='lignes_charges')
    montant = models.DecimalField(max_digits=12, decimal_places=2)
    montant_paye = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    date_paiement = models.DateField(null=True, blank=True)

    @property
    def statut(self):
        return calculer_statut_ligne(self.montant_paye, self.montant)

    @property
    def montant_restant(self):
        return max(self.montant - self.montant_paye, Decimal('0.00'))

    def __str__(self):
        return f"{self.colocataire} : {self.montant} ({self.charge.description})"

    class Meta:
        verbose_name = "Ligne de répartition"
        verbose_name_plural = "Lignes de répartition"
        ordering = ['charge', 'pk']
        unique_together = ('charge', 'colocataire')


class PaiementCharge(models.Model):
    ligne = models.ForeignKey(LigneRepartition, on_delete=models.PROTECT, related_name='paiements')
    montant = models.DecimalField(max_digits=12, decimal_places=2)
    date_paiement = models.DateField()
    reference = models.CharField(max_length=100, null=True, blank=True)
    enregistre_le = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Paiement de charge"
        verbose_name_plural = "Paiements de charges"
        constraints = [
            models.UniqueConstraint(
                fields=['ligne', 'reference'],
                condition=Q(reference__isnull=False),
                name='paiement_charge_reference_unique_par_ligne',
            ),
        ]


# =============================================================================
# QUITTANCES
# =============================================================================

class CompteurQuittance(models.Model):
    """Dernier numéro de quittance attribué pour un couple bailleur / bien."""
    proprietaire = models.ForeignKey(Proprietaire, on_delete=models.PROTECT, related_name='compteurs_quittance')
    bien = models.ForeignKey(Bien, on_delete=models.PROTECT, related_name='compteurs_quittance')
    dernier_numero = models.PositiveIntegerField(default=0)

    def __str__(self):
        return f"{self.bien} -> {self.dernier_numero}"

    @staticmethod
    @transaction.atomic
    def prochain_numero(proprietaire, bien):
        compteur, _ = CompteurQuittance.objects.select_for_update().get_or_create(
            proprietaire=proprietaire,
            bien=bien,
            defaults={'dernier_numero': 0},
        )
        compteur.dernier_numero = F('dernier_numero') + 1
        compteur.save(update_fields=['dernier_numero'])
        compteur.refresh_from_db(fields=['dernier_numero'])
        return int(compteur.dernier_numero)

    class Meta:
        verbose_name = "Compteur de quittances"
        verbose_name_plural = "Compteurs de quittances"
        unique_together = ('proprietaire', 'bien')


class Quittance(models.Model):
    echeance = models.ForeignKey(Echeance, on_delete=models.PROTECT, related_name='quittances')
    proprietaire = models.ForeignKey(Proprietaire, on_delete=models.PROTECT, related_name='quittances')
    bien = models.ForeignKey(Bien, on_delete=models.PROTECT, related_name='quittances')
    sequence = models.PositiveIntegerField()
    numero = models.CharField(max_length=50, unique=True)
    date_emission = models.DateTimeField(default=timezone.now)
    snapshot = models.JSONField(encoder=DjangoJSONEncoder, help_text="Montants et parties figés à l'émission")

    annulee_le = models.DateTimeField(null=True, blank=True, verbose_name="Annulée le")
    motif_annulation = models.CharField(max_length=200, blank=True)
    remplace = models.OneToOneField('self', on_delete=models.PROTECT, null=True, blank=True, related_name='remplacee_par')

    @property
    def est_active(self):
        return self.annulee_le is None

    def __str__(self):
        return f"Quittance {self.numero}"

    class Meta:
        verbose_name = "Quittance"
        verbose_name_plural = "Quittances"
        ordering = ['-date_emission']
        constraints = [
            models.UniqueConstraint(
                fields=['echeance'],
                condition=Q(annulee_le__isnull=True),
                name='une_quittance_active_par_echeance',
            ),
            models.UniqueConstraint(fields=['proprietaire', 'bien', 'sequence'], name='sequence_quittance_unique'),
        ]


# =============================================================================
# ÉVÉNEMENTS SORTANTS
# =============================================================================

class Evenement(models.Model):
    """Événement à publier vers les collaborateurs externes (rendu, notification)."""
    TYPE_CHOICES = [
        ('QUITTANCE_EMISE', 'Quittance émise'),
        ('QUITTANCE_ANNULEE', 'Quittance annulée'),
        ('RELANCE_ECHEANCE', "Relance d'échéance"),
        ('CAUTION_RESTITUEE', 'Caution restituée'),
    ]

    type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    payload = models.JSONField(encoder=DjangoJSONEncoder)
    cree_le = models.DateTimeField(auto_now_add=True)
    publie_le = models.DateTimeField(null=True, blank=True)
    tentatives = models.PositiveIntegerField(default=0)
    derniere_erreur = models.TextField(blank=True)

    @property
    def est_publie(self):
        return self.publie_le is not None

    def __str__(self):
        return f"{self.get_type_display()} #{self.pk}"

    class Meta:
        verbose_name = "Événement sortant"
        verbose_name_plural = "Événements sortants"
        ordering = ['cree_le']
