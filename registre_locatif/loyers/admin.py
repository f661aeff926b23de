from django.contrib import admin
from django.utils import timezone
from django.utils.safestring import mark_safe
import logging

from .calculators import SoldeCalculator
from .evenements import publier
from .exceptions import RegistreError
from .models import (
    Proprietaire, Bien, Locataire, Colocation, Colocataire, Bail, Echeance, Paiement, DepotCaution,
    Charge, LigneRepartition, Quittance, CompteurQuittance, Evenement
)
from .services import EcheancierService, PaiementService, QuittanceService
from .statuts import StatutCaution, StatutEcheance, StatutCharge

logger = logging.getLogger(__name__)

# Personnalisation de l'interface (complétée par Jazzmin dans settings.py)
admin.site.site_header = "Registre Locatif"
admin.site.site_title = "Administration des Loyers"
admin.site.index_title = "Tableau de Bord"

COULEURS_STATUT = {
    StatutEcheance.A_VENIR: '#6c757d',
    StatutEcheance.EN_ATTENTE: '#17a2b8',
    StatutEcheance.EN_RETARD: '#dc3545',
    StatutEcheance.PARTIEL: '#fd7e14',
    StatutEcheance.PAYE: '#28a745',
    StatutEcheance.ANNULE: '#343a40',
    StatutCharge.DRAFT: '#6c757d',
    StatutCharge.SENT: '#17a2b8',
    StatutCharge.PARTIAL: '#fd7e14',
    StatutCharge.PAID: '#28a745',
    StatutCaution.RECU: '#17a2b8',
    StatutCaution.RESTITUE: '#28a745',
    StatutCaution.PARTIELLEMENT_RESTITUE: '#fd7e14',
    StatutCaution.RETENU: '#dc3545',
}


def badge(statut, libelle):
    couleur = COULEURS_STATUT.get(statut, '#6c757d')
    return mark_safe(
        f'<span style="background-color: {couleur}; color: white; padding: 3px 8px; '
        f'border-radius: 3px; font-weight: bold; font-size: 11px;">{libelle}</span>'
    )


class ColocataireInline(admin.TabularInline):
    model = Colocataire
    extra = 1


class EcheanceInline(admin.TabularInline):
    model = Echeance
    extra = 0
    fields = ('date_echeance', 'montant_du', 'montant_paye', 'get_statut', 'date_paiement', 'mode_paiement', 'reference')
    readonly_fields = fields
    ordering = ['date_echeance']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def get_statut(self, obj):
        statut = obj.statut
        return badge(statut, statut.label)
    get_statut.short_description = 'Statut'


class PaiementInline(admin.TabularInline):
    model = Paiement
    extra = 0
    fields = ('montant', 'date_paiement', 'mode_paiement', 'reference', 'source_enregistrement', 'contrepasse_le', 'motif_contrepassation')
    readonly_fields = fields
    can_delete = False # On garde l'historique

    def has_add_permission(self, request, obj=None):
        return False


class QuittanceInline(admin.TabularInline):
    model = Quittance
    fk_name = 'echeance'
    extra = 0
    fields = ('numero', 'date_emission', 'annulee_le', 'motif_annulation', 'remplace')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class DepotCautionInline(admin.TabularInline):
    model = DepotCaution
    extra = 0
    max_num = 1
    fields = ('montant', 'date_reception', 'get_statut', 'montant_restitue', 'date_restitution', 'motif_retenue')
    readonly_fields = ('get_statut', 'montant_restitue', 'date_restitution', 'motif_retenue')
    can_delete = False

    def get_statut(self, obj):
        if obj.pk is None:
            return "-"
        statut = obj.statut
        return badge(statut, statut.label)
    get_statut.short_description = 'Statut'


class LigneRepartitionInline(admin.TabularInline):
    model = LigneRepartition
    extra = 0
    fields = ('colocataire', 'montant', 'montant_paye', 'get_statut', 'date_paiement')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def get_statut(self, obj):
        statut = obj.statut
        return badge(statut, statut.label)
    get_statut.short_description = 'Statut'


@admin.register(Proprietaire)
class ProprietaireAdmin(admin.ModelAdmin):
    list_display = ('nom', 'email', 'telephone')
    search_fields = ('nom', 'email')


@admin.register(Bien)
class BienAdmin(admin.ModelAdmin):
    list_display = ('titre', 'ville', 'proprietaire')
    list_filter = ('proprietaire', 'ville')
    search_fields = ('titre', 'adresse', 'ville')


@admin.register(Locataire)
class LocataireAdmin(admin.ModelAdmin):
    list_display = ('nom', 'prenom', 'email', 'telephone')
    search_fields = ('nom', 'prenom', 'email', 'telephone')


@admin.register(Colocation)
class ColocationAdmin(admin.ModelAdmin):
    list_display = ('nom', 'bien')
    inlines = [ColocataireInline]


@admin.register(Bail)
class BailAdmin(admin.ModelAdmin):
    list_display = ('bien', 'locataire', 'date_debut', 'date_fin', 'get_loyer', 'jour_echeance', 'get_solde', 'get_statut_badge')

    # Filtres avancés
    list_filter = (
        'statut',
        ('date_debut', admin.DateFieldListFilter),
        'bien__proprietaire',
    )

    # Recherche améliorée
    search_fields = (
        'bien__titre',
        'bien__ville',
        'locataire__nom',
        'locataire__prenom',
    )

    # Navigation chronologique
    date_hierarchy = 'date_debut'

    inlines = [DepotCautionInline, EcheanceInline]

    actions = [
        'generer_echeanciers',
        'prolonger_annee_suivante',
    ]

    def get_queryset(self, request):
        """Optimisation des requêtes avec select_related et prefetch_related."""
        qs = super().get_queryset(request)
        return qs.select_related(
            'bien__proprietaire', 'locataire'
        ).prefetch_related(
            'echeances'
        )

    def get_loyer(self, obj):
        return f"{obj.montant_loyer} €"
    get_loyer.short_description = 'Loyer'
    get_loyer.admin_order_field = 'montant_loyer'

    def get_solde(self, obj):
        synthese = SoldeCalculator.calculer(obj, echeances=obj.echeances.all())
        if synthese['montant_en_retard'] > 0:
            return mark_safe(f'<span style="color: #dc3545; font-weight: bold;">{synthese["solde"]} €</span>')
        return f"{synthese['solde']} €"
    get_solde.short_description = 'Solde'

    def get_statut_badge(self, obj):
        """Badge coloré pour le statut du bail."""
        if obj.est_actif:
            return mark_safe(
                f'<span style="background-color: #28a745; color: white; padding: 3px 10px; border-radius: 3px; font-weight: bold;">✓ {obj.get_statut_display()}</span>'
            )
        else:
            return mark_safe(
                f'<span style="background-color: #dc3545; color: white; padding: 3px 10px; border-radius: 3px;">✗ {obj.get_statut_display()}</span>'
            )
    get_statut_badge.short_description = 'Statut'
    get_statut_badge.admin_order_field = 'statut'

    @admin.action(description="📅 Générer l'échéancier")
    def generer_echeanciers(self, request, queryset):
        generes = 0
        for bail in queryset:
            try:
                EcheancierService.generer_echeancier(bail)
                generes += 1
            except RegistreError as e:
                self.message_user(request, f"{bail}: {e}", level='warning')
        self.message_user(request, f'{generes} échéancier(s) généré(s).', level='success')

    @admin.action(description="➕ Prolonger sur l'année suivante")
    def prolonger_annee_suivante(self, request, queryset):
        annee_cible = timezone.localdate().year + 1
        total = 0
        for bail in queryset:
            try:
                total += len(EcheancierService.prolonger(bail, annee_cible))
            except RegistreError as e:
                self.message_user(request, f"{bail}: {e}", level='warning')
        logger.info(f"Prolongation {annee_cible} depuis l'admin: {total} échéance(s) créée(s)")
        self.message_user(request, f'{total} échéance(s) créée(s) pour {annee_cible}.', level='success')


@admin.register(Echeance)
class EcheanceAdmin(admin.ModelAdmin):
    list_display = ('bail', 'date_echeance', 'montant_du', 'montant_paye', 'get_statut', 'date_paiement')
    list_filter = (('date_echeance', admin.DateFieldListFilter), 'bail__bien__proprietaire', 'mode_paiement')
    search_fields = ('bail__locataire__nom', 'bail__bien__titre', 'reference')
    date_hierarchy = 'date_echeance'
    readonly_fields = (
        'bail', 'date_echeance', 'montant_du', 'montant_paye', 'get_statut', 'date_paiement',
        'mode_paiement', 'reference', 'note', 'source_enregistrement', 'annulee_le', 'motif_annulation',
    )
    inlines = [PaiementInline, QuittanceInline]
    actions = ['emettre_quittances']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        # Une échéance s'annule, elle ne se supprime jamais
        return False

    def get_statut(self, obj):
        statut = obj.statut
        return badge(statut, statut.label)
    get_statut.short_description = 'Statut'

    @admin.action(description='🧾 Émettre les quittances')
    def emettre_quittances(self, request, queryset):
        emises = 0
        for echeance in queryset:
            try:
                QuittanceService.emettre(echeance)
                emises += 1
            except RegistreError as e:
                self.message_user(request, str(e), level='warning')
        self.message_user(request, f'{emises} quittance(s) disponible(s).', level='success')


@admin.register(Paiement)
class PaiementAdmin(admin.ModelAdmin):
    list_display = ('echeance', 'montant', 'date_paiement', 'mode_paiement', 'reference', 'source_enregistrement', 'contrepasse_le')
    list_filter = ('mode_paiement', 'source_enregistrement')
    search_fields = ('reference', 'echeance__bail__locataire__nom')
    readonly_fields = [f.name for f in Paiement._meta.fields]
    actions = ['contrepasser']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description='↩️ Contrepasser (paiement rejeté)')
    def contrepasser(self, request, queryset):
        for paiement in queryset:
            try:
                PaiementService.contrepasser_paiement(paiement, "Contrepassé depuis l'administration")
            except RegistreError as e:
                self.message_user(request, str(e), level='warning')
        self.message_user(request, f'{queryset.count()} paiement(s) traité(s).')


@admin.register(Charge)
class ChargeAdmin(admin.ModelAdmin):
    list_display = ('description', 'bien', 'categorie', 'montant_total', 'mode_repartition', 'date_echeance', 'get_statut')
    list_filter = ('categorie', 'mode_repartition', 'bien')
    search_fields = ('description', 'bien__titre')
    readonly_fields = [f.name for f in Charge._meta.fields]
    inlines = [LigneRepartitionInline]

    def has_add_permission(self, request):
        # Création par ChargeService (répartition calculée)
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def get_statut(self, obj):
        statut = obj.statut
        return badge(statut, statut.label)
    get_statut.short_description = 'Statut'


@admin.register(Quittance)
class QuittanceAdmin(admin.ModelAdmin):
    list_display = ('numero', 'echeance', 'date_emission', 'get_active', 'remplace')
    list_filter = ('proprietaire', 'bien')
    search_fields = ('numero',)
    readonly_fields = [f.name for f in Quittance._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def get_active(self, obj):
        return obj.est_active
    get_active.short_description = 'Active'
    get_active.boolean = True


@admin.register(CompteurQuittance)
class CompteurQuittanceAdmin(admin.ModelAdmin):
    list_display = ('proprietaire', 'bien', 'dernier_numero')
    readonly_fields = ('proprietaire', 'bien', 'dernier_numero')

    def has_add_permission(self, request):
        return False


@admin.register(Evenement)
class EvenementAdmin(admin.ModelAdmin):
    list_display = ('__str__', 'type', 'cree_le', 'publie_le', 'tentatives')
    list_filter = ('type', ('publie_le', admin.EmptyFieldListFilter))
    readonly_fields = [f.name for f in Evenement._meta.fields]
    actions = ['republier']

    def has_add_permission(self, request):
        return False

    @admin.action(description='🔁 Republier les événements en attente')
    def republier(self, request, queryset):
        resultats = [publier(evenement.pk) for evenement in queryset.filter(publie_le__isnull=True)]
        echecs = resultats.count(False)
        if echecs:
            self.message_user(request, f'{echecs} événement(s) toujours en échec.', level='warning')
        self.message_user(request, f'{resultats.count(True)} événement(s) publié(s).')
