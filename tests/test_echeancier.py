"""
Génération et prolongation de l'échéancier.
"""
import calendar
from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from loyers.calculators import EcheancierCalculator, date_echeance_du_mois
from loyers.exceptions import BailInactifError, ExtensionImpossibleError, HorizonDepasseError
from loyers.models import Bail, Echeance
from loyers.services import EcheancierService, PaiementService
from loyers.statuts import StatutEcheance


def bail_en_memoire(date_debut=date(2025, 1, 1), date_fin=None, jour_echeance=5, montant=Decimal('75000')):
    return Bail(date_debut=date_debut, date_fin=date_fin, jour_echeance=jour_echeance, montant_loyer=montant)


# =============================================================================
# Calcul pur
# =============================================================================

class TestEcheancierCalculator:

    def test_annee_complete_jour_5(self):
        echeances = EcheancierCalculator.generer(bail_en_memoire(), date(2025, 1, 1), date(2025, 12, 31))

        assert len(echeances) == 12
        assert [e['date_echeance'] for e in echeances] == [date(2025, m, 5) for m in range(1, 13)]
        assert all(e['montant'] == Decimal('75000') for e in echeances)
        assert all(e['statut'] == StatutEcheance.A_VENIR for e in echeances)

    def test_jour_ramene_au_dernier_jour_des_mois_courts(self):
        echeances = EcheancierCalculator.generer(
            bail_en_memoire(jour_echeance=31), date(2025, 1, 1), date(2025, 12, 31)
        )
        dates = {e['date_echeance'].month: e['date_echeance'].day for e in echeances}

        assert dates[2] == 28
        assert dates[4] == 30
        assert dates[1] == 31
        assert dates[12] == 31

    def test_annee_bissextile(self):
        echeances = EcheancierCalculator.generer(
            bail_en_memoire(date_debut=date(2024, 1, 1), jour_echeance=30), date(2024, 2, 1), date(2024, 2, 29)
        )
        assert [e['date_echeance'] for e in echeances] == [date(2024, 2, 29)]

    def test_entree_apres_le_jour_d_echeance(self):
        """Le mois d'entrée n'a pas d'échéance si le jour d'échéance est déjà passé."""
        bail = bail_en_memoire(date_debut=date(2025, 3, 10))
        echeances = EcheancierCalculator.generer(bail, bail.date_debut, date(2025, 12, 31))

        assert echeances[0]['date_echeance'] == date(2025, 4, 5)
        assert len(echeances) == 9

    def test_bornee_par_la_date_de_fin_du_bail(self):
        bail = bail_en_memoire(date_fin=date(2025, 6, 30))
        echeances = EcheancierCalculator.generer(bail, date(2025, 1, 1), date(2025, 12, 31))

        assert echeances[-1]['date_echeance'] == date(2025, 6, 5)
        assert len(echeances) == 6

    def test_traverse_la_fin_d_annee(self):
        bail = bail_en_memoire(date_debut=date(2025, 11, 1))
        echeances = EcheancierCalculator.generer(bail, date(2025, 11, 1), date(2026, 2, 28))

        assert [e['date_echeance'] for e in echeances] == [
            date(2025, 11, 5), date(2025, 12, 5), date(2026, 1, 5), date(2026, 2, 5),
        ]

    def test_intervalle_vide(self):
        assert EcheancierCalculator.generer(bail_en_memoire(), date(2025, 1, 6), date(2025, 2, 4)) == []

    def test_horizon_initial(self):
        assert EcheancierCalculator.horizon_initial(bail_en_memoire()) == date(2025, 12, 31)
        assert EcheancierCalculator.horizon_initial(bail_en_memoire(date_fin=date(2025, 8, 31))) == date(2025, 8, 31)

    @given(
        jour=st.integers(min_value=1, max_value=31),
        annee=st.integers(min_value=1990, max_value=2100),
    )
    def test_jour_d_echeance_toujours_ramene_au_mois(self, jour, annee):
        bail = bail_en_memoire(date_debut=date(annee, 1, 1), jour_echeance=jour)
        echeances = EcheancierCalculator.generer_annee(bail, annee)

        assert len(echeances) == 12
        for e in echeances:
            d = e['date_echeance']
            assert d.day == min(jour, calendar.monthrange(d.year, d.month)[1])

        dates = [e['date_echeance'] for e in echeances]
        assert dates == sorted(set(dates))

    def test_date_echeance_du_mois(self):
        assert date_echeance_du_mois(2023, 2, 31) == date(2023, 2, 28)
        assert date_echeance_du_mois(2024, 2, 31) == date(2024, 2, 29)
        assert date_echeance_du_mois(2025, 9, 31) == date(2025, 9, 30)


# =============================================================================
# Persistance
# =============================================================================

@pytest.mark.django_db
class TestGenererEcheancier:

    def test_cree_douze_echeances_pour_une_entree_en_janvier(self, bail):
        echeances = EcheancierService.generer_echeancier(bail)

        assert len(echeances) == 12
        assert all(e.date_echeance.day == 5 for e in echeances)
        assert all(e.montant_du == Decimal('75000') for e in echeances)
        assert all(e.montant_paye == 0 for e in echeances)

    def test_statut_de_janvier_au_fil_des_jours(self, bail):
        EcheancierService.generer_echeancier(bail)
        janvier = bail.echeances.get(date_echeance=date(2025, 1, 5))

        assert janvier.statut_au(date(2025, 1, 4)) == StatutEcheance.A_VENIR
        assert janvier.statut_au(date(2025, 1, 5)) == StatutEcheance.EN_ATTENTE
        assert janvier.statut_au(date(2025, 1, 6)) == StatutEcheance.EN_RETARD

    def test_second_appel_ne_cree_rien(self, bail):
        EcheancierService.generer_echeancier(bail)
        EcheancierService.generer_echeancier(bail)

        assert bail.echeances.count() == 12

    @pytest.mark.parametrize('statut', ['TERMINE', 'RESILIE'])
    def test_refuse_un_bail_clos(self, creer_bail, statut):
        bail = creer_bail(statut=statut)

        with pytest.raises(BailInactifError) as exc:
            EcheancierService.generer_echeancier(bail)
        assert exc.value.code == 'BAIL_INACTIF'
        assert not Echeance.objects.exists()

    @pytest.mark.parametrize('statut', ['EN_PREAVIS', 'EN_RENOUVELLEMENT'])
    def test_accepte_preavis_et_renouvellement(self, creer_bail, statut):
        bail = creer_bail(statut=statut)
        assert len(EcheancierService.generer_echeancier(bail)) == 12


@pytest.mark.django_db
class TestProlonger:

    def test_ajoute_l_annee_suivante(self, bail):
        EcheancierService.generer_echeancier(bail)
        creees = EcheancierService.prolonger(bail, 2026)

        assert len(creees) == 12
        assert bail.echeances.count() == 24
        assert bail.echeances.order_by('-date_echeance').first().date_echeance == date(2026, 12, 5)

    def test_prolonger_deux_fois_ne_cree_rien(self, bail):
        EcheancierService.generer_echeancier(bail)
        EcheancierService.prolonger(bail, 2026)

        assert EcheancierService.prolonger(bail, 2026) == []
        assert bail.echeances.count() == 24

    def test_ne_touche_pas_aux_echeances_reglees(self, bail):
        EcheancierService.generer_echeancier(bail)
        janvier = bail.echeances.get(date_echeance=date(2025, 1, 5))
        PaiementService.enregistrer_paiement(janvier, Decimal('75000'), 'VIREMENT', reference='R-JAN',
                                             aujourd_hui=date(2025, 1, 5))

        EcheancierService.prolonger(bail, 2026)

        janvier.refresh_from_db()
        assert janvier.montant_paye == Decimal('75000')
        assert janvier.statut_au(date(2026, 1, 1)) == StatutEcheance.PAYE

    def test_horizon_non_contigu(self, bail):
        EcheancierService.generer_echeancier(bail)

        with pytest.raises(ExtensionImpossibleError) as exc:
            EcheancierService.prolonger(bail, 2027)
        assert exc.value.code == 'EXTENSION_IMPOSSIBLE'
        assert bail.echeances.count() == 12

    def test_sans_echeancier(self, bail):
        with pytest.raises(ExtensionImpossibleError):
            EcheancierService.prolonger(bail, 2026)

    def test_date_de_fin_avant_l_annee_demandee(self, creer_bail):
        bail = creer_bail(date_fin=date(2025, 12, 31))
        EcheancierService.generer_echeancier(bail)

        with pytest.raises(HorizonDepasseError):
            EcheancierService.prolonger(bail, 2026)

    def test_date_de_fin_dans_l_annee_demandee(self, creer_bail):
        bail = creer_bail(date_fin=date(2026, 3, 15))
        EcheancierService.generer_echeancier(bail)
        creees = EcheancierService.prolonger(bail, 2026)

        assert [e.date_echeance for e in creees] == [date(2026, 1, 5), date(2026, 2, 5), date(2026, 3, 5)]

    def test_bail_inactif(self, bail):
        EcheancierService.generer_echeancier(bail)
        bail.statut = 'TERMINE'
        bail.save()

        with pytest.raises(BailInactifError):
            EcheancierService.prolonger(bail, 2026)

    def test_prolonger_tous(self, creer_bail):
        actif = creer_bail()
        borne = creer_bail(date_fin=date(2025, 12, 31))
        clos = creer_bail()
        for bail in (actif, borne, clos):
            EcheancierService.generer_echeancier(bail)
        clos.statut = 'RESILIE'
        clos.save()

        resultat = EcheancierService.prolonger_tous(2026)

        assert resultat == {'baux': 1, 'echeances': 12, 'ignores': 1}
        assert actif.echeances.count() == 24
        assert borne.echeances.count() == 12
        assert clos.echeances.count() == 12
