"""
Émission des quittances et publication des événements sortants.
"""
from datetime import date
from decimal import Decimal

import pytest

from loyers import evenements
from loyers.exceptions import QuittanceImpossibleError
from loyers.models import Bien, Evenement, Proprietaire, Quittance
from loyers.services import EcheancierService, PaiementService, QuittanceService

JOUR = date(2025, 1, 10)

gestionnaire_appels = []


def gestionnaire_memoire(evenement):
    gestionnaire_appels.append((evenement.type, evenement.payload))


def gestionnaire_en_panne(evenement):
    raise ConnectionError("moteur de rendu indisponible")


@pytest.fixture(autouse=True)
def vider_appels():
    gestionnaire_appels.clear()


@pytest.fixture
def echeancier(bail):
    return EcheancierService.generer_echeancier(bail)


def payer(echeance, montant, reference):
    return PaiementService.enregistrer_paiement(echeance, Decimal(montant), 'VIREMENT', reference=reference,
                                                aujourd_hui=JOUR)


@pytest.mark.django_db
class TestEmettre:

    def test_numero_sequentiel_par_bien(self, echeancier, bien, settings):
        settings.LOYERS_PREFIXE_QUITTANCE = 'QUI'
        payer(echeancier[0], '75000', 'R1')
        payer(echeancier[1], '75000', 'R2')

        premiere = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)
        seconde = QuittanceService.emettre(echeancier[1], aujourd_hui=JOUR)

        assert premiere.sequence == 1
        assert seconde.sequence == 2
        assert premiere.numero == f"QUI-{bien.proprietaire.pk:04d}-{bien.pk:04d}-000001"
        assert seconde.numero == f"QUI-{bien.proprietaire.pk:04d}-{bien.pk:04d}-000002"

    def test_emettre_deux_fois_renvoie_la_meme_quittance(self, echeancier):
        payer(echeancier[0], '75000', 'R1')

        premiere = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)
        seconde = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)

        assert seconde.pk == premiere.pk
        assert seconde.numero == premiere.numero
        assert Quittance.objects.count() == 1
        assert Evenement.objects.filter(type='QUITTANCE_EMISE').count() == 1

    def test_quittance_partielle(self, echeancier):
        payer(echeancier[0], '30000', 'R1')
        quittance = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)

        assert quittance.snapshot['statut'] == 'PARTIEL'
        assert quittance.snapshot['reste_a_payer'] == '45000.00'

    def test_refusee_sans_paiement(self, echeancier):
        with pytest.raises(QuittanceImpossibleError) as exc:
            QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)
        assert exc.value.code == 'QUITTANCE_IMPOSSIBLE'
        assert not Quittance.objects.exists()

    def test_snapshot_fige(self, echeancier, bail):
        payer(echeancier[0], '75000', 'R1')
        quittance = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)

        bail.locataire.nom = "Martin-Leroy"
        bail.locataire.save()
        quittance.refresh_from_db()

        assert quittance.snapshot['locataire']['nom'] == "Martin"
        assert quittance.snapshot['bailleur']['nom'] == "SCI Les Tilleuls"
        assert quittance.snapshot['periode'] == {'date_echeance': '2025-01-05', 'libelle': 'Janvier 2025'}
        assert quittance.snapshot['montant_paye'] == '75000.00'

    def test_numerotation_propre_a_chaque_bien(self, creer_bail, proprietaire, echeancier):
        autre_bien = Bien.objects.create(proprietaire=proprietaire, titre="Studio", ville="Lyon")
        autre_bail = creer_bail(bien=autre_bien)
        autres = EcheancierService.generer_echeancier(autre_bail)
        payer(echeancier[0], '75000', 'R1')
        payer(autres[0], '75000', 'R1')

        assert QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR).sequence == 1
        assert QuittanceService.emettre(autres[0], aujourd_hui=JOUR).sequence == 1

    def test_bien_cede_a_un_autre_bailleur(self, echeancier, bien, proprietaire):
        payer(echeancier[0], '75000', 'R1')
        ancienne = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)

        repreneur = Proprietaire.objects.create(nom="SCI Les Érables")
        bien.proprietaire = repreneur
        bien.save()
        payer(echeancier[1], '75000', 'R2')
        nouvelle = QuittanceService.emettre(echeancier[1], aujourd_hui=JOUR)

        assert nouvelle.sequence == 1
        assert nouvelle.proprietaire == repreneur
        assert nouvelle.numero == f"QUI-{repreneur.pk:04d}-{bien.pk:04d}-000001"
        assert nouvelle.numero != ancienne.numero
        assert nouvelle.snapshot['bailleur']['nom'] == "SCI Les Érables"
        assert Quittance.objects.filter(proprietaire=proprietaire).count() == 1


@pytest.mark.django_db
class TestAnnulationEtRemplacement:

    def test_contrepassation_puis_reemission(self, echeancier):
        payer(echeancier[0], '75000', 'CHQ-1')
        initiale = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)

        PaiementService.contrepasser_paiement(echeancier[0].paiements.get(), "Chèque rejeté")
        payer(echeancier[0], '75000', 'VIR-2')
        nouvelle = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)

        initiale.refresh_from_db()
        assert not initiale.est_active
        assert nouvelle.pk != initiale.pk
        assert nouvelle.sequence == initiale.sequence + 1
        assert nouvelle.remplace == initiale
        assert echeancier[0].quittances.filter(annulee_le__isnull=True).count() == 1

    def test_numero_jamais_reutilise(self, echeancier):
        payer(echeancier[0], '75000', 'R1')
        quittance = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)
        QuittanceService.annuler(quittance, "Erreur de destinataire")

        reemise = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)

        assert reemise.numero != quittance.numero
        assert Evenement.objects.filter(type='QUITTANCE_ANNULEE').count() == 1


@pytest.mark.django_db
class TestEvenementsSortants:

    def test_publie_apres_commit(self, echeancier, settings, django_capture_on_commit_callbacks):
        settings.LOYERS_GESTIONNAIRES_EVENEMENTS = ['tests.test_quittances.gestionnaire_memoire']
        payer(echeancier[0], '75000', 'R1')

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            quittance = QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)

        assert len(callbacks) == 1
        assert gestionnaire_appels[0][0] == 'QUITTANCE_EMISE'
        assert gestionnaire_appels[0][1]['numero'] == quittance.numero
        assert Evenement.objects.get().est_publie

    def test_gestionnaire_en_echec_n_annule_pas_la_quittance(self, echeancier, settings,
                                                             django_capture_on_commit_callbacks):
        settings.LOYERS_GESTIONNAIRES_EVENEMENTS = ['tests.test_quittances.gestionnaire_en_panne']
        payer(echeancier[0], '75000', 'R1')

        with django_capture_on_commit_callbacks(execute=True):
            QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)

        evenement = Evenement.objects.get()
        assert not evenement.est_publie
        assert evenement.tentatives == 1
        assert 'ConnectionError' in evenement.derniere_erreur
        assert Quittance.objects.filter(echeance=echeancier[0], annulee_le__isnull=True).exists()
        echeancier[0].refresh_from_db()
        assert echeancier[0].montant_paye == Decimal('75000')

    def test_republication_des_evenements_en_attente(self, echeancier, settings):
        payer(echeancier[0], '75000', 'R1')
        QuittanceService.emettre(echeancier[0], aujourd_hui=JOUR)

        settings.LOYERS_GESTIONNAIRES_EVENEMENTS = ['tests.test_quittances.gestionnaire_en_panne']
        assert evenements.publier_en_attente() == (0, 1)

        settings.LOYERS_GESTIONNAIRES_EVENEMENTS = ['tests.test_quittances.gestionnaire_memoire']
        assert evenements.publier_en_attente() == (1, 0)
        assert evenements.publier_en_attente() == (0, 0)
        assert Evenement.objects.get().tentatives == 2
