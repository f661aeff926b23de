"""
Dépôt de garantie : réception à l'entrée, restitution totale ou partielle à la sortie.
"""
from datetime import date
from decimal import Decimal

import pytest

from loyers.exceptions import CautionInvalideError, MontantInvalideError
from loyers.models import DepotCaution, Evenement
from loyers.services import PaiementService
from loyers.statuts import StatutCaution, calculer_statut_caution

SORTIE = date(2025, 7, 15)


@pytest.fixture
def caution(bail):
    return PaiementService.enregistrer_caution(bail, Decimal('150000'), date_reception=date(2025, 1, 1))


class TestStatutCaution:

    @pytest.mark.parametrize('montant_restitue, attendu', [
        (None, StatutCaution.RECU),
        (Decimal('150000'), StatutCaution.RESTITUE),
        (Decimal('100000'), StatutCaution.PARTIELLEMENT_RESTITUE),
        (Decimal('0'), StatutCaution.RETENU),
    ])
    def test_statut_derive_du_montant_rendu(self, montant_restitue, attendu):
        assert calculer_statut_caution(Decimal('150000'), montant_restitue) == attendu


@pytest.mark.django_db
class TestEnregistrerCaution:

    def test_caution_recue(self, caution, bail):
        assert caution.bail == bail
        assert caution.statut == StatutCaution.RECU
        assert caution.montant_retenu == Decimal('0.00')

    def test_second_enregistrement_identique(self, caution, bail):
        encore = PaiementService.enregistrer_caution(bail, Decimal('150000'))

        assert encore.pk == caution.pk
        assert DepotCaution.objects.count() == 1

    def test_montant_different_refuse(self, caution, bail):
        with pytest.raises(CautionInvalideError) as exc:
            PaiementService.enregistrer_caution(bail, Decimal('200000'))
        assert exc.value.code == 'CAUTION_INVALIDE'

    def test_montant_nul(self, bail):
        with pytest.raises(MontantInvalideError):
            PaiementService.enregistrer_caution(bail, Decimal('0'))
        assert not DepotCaution.objects.exists()


@pytest.mark.django_db
class TestRestituerCaution:

    def test_restitution_totale(self, caution, bail):
        caution = PaiementService.restituer_caution(bail, Decimal('150000'), date_restitution=SORTIE)

        assert caution.statut == StatutCaution.RESTITUE
        assert caution.date_restitution == SORTIE
        assert caution.montant_retenu == Decimal('0')

    def test_restitution_partielle_avec_retenue(self, caution, bail):
        caution = PaiementService.restituer_caution(bail, Decimal('110000'), motif_retenue="Peinture du séjour",
                                                    date_restitution=SORTIE)

        caution.refresh_from_db()
        assert caution.statut == StatutCaution.PARTIELLEMENT_RESTITUE
        assert caution.montant_retenu == Decimal('40000')
        assert caution.motif_retenue == "Peinture du séjour"

    def test_retenue_integrale(self, caution, bail):
        caution = PaiementService.restituer_caution(bail, Decimal('0'), motif_retenue="Loyers impayés")

        assert caution.statut == StatutCaution.RETENU
        assert caution.montant_retenu == Decimal('150000')

    def test_montant_superieur_au_depot(self, caution, bail):
        with pytest.raises(CautionInvalideError):
            PaiementService.restituer_caution(bail, Decimal('150001'))

        caution.refresh_from_db()
        assert caution.statut == StatutCaution.RECU

    def test_montant_negatif(self, caution, bail):
        with pytest.raises(CautionInvalideError):
            PaiementService.restituer_caution(bail, Decimal('-1'))

    def test_sans_depot_enregistre(self, bail):
        with pytest.raises(CautionInvalideError):
            PaiementService.restituer_caution(bail, Decimal('1000'))

    def test_rejeu_de_la_restitution(self, caution, bail):
        PaiementService.restituer_caution(bail, Decimal('100000'), date_restitution=SORTIE)
        caution = PaiementService.restituer_caution(bail, Decimal('100000'), date_restitution=SORTIE)

        assert caution.montant_restitue == Decimal('100000')
        assert Evenement.objects.filter(type='CAUTION_RESTITUEE').count() == 1

    def test_seconde_restitution_differente_refusee(self, caution, bail):
        PaiementService.restituer_caution(bail, Decimal('100000'))

        with pytest.raises(CautionInvalideError):
            PaiementService.restituer_caution(bail, Decimal('150000'))

    def test_evenement_de_restitution(self, caution, bail):
        PaiementService.restituer_caution(bail, Decimal('120000'), motif_retenue="Ménage", date_restitution=SORTIE)

        evenement = Evenement.objects.get(type='CAUTION_RESTITUEE')
        assert evenement.payload['bail_id'] == bail.pk
        assert evenement.payload['contact_locataire'] == '0611223344'
        assert evenement.payload['statut'] == 'PARTIELLEMENT_RESTITUE'
        assert Decimal(evenement.payload['montant_retenu']) == Decimal('30000')
