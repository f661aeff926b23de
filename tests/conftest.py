"""
Fixtures partagées : un bailleur, un bien, un locataire et une fabrique de baux.
"""
from datetime import date
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from loyers.models import Bail, Bien, Colocataire, Colocation, Locataire, Proprietaire


@pytest.fixture
def proprietaire(db):
    return Proprietaire.objects.create(
        nom="SCI Les Tilleuls", email="gestion@tilleuls.fr", telephone="0102030405",
        adresse="3 rue des Lilas, 69003 Lyon",
    )


@pytest.fixture
def bien(proprietaire):
    return Bien.objects.create(
        proprietaire=proprietaire, titre="Appartement T3", adresse="12 avenue Berthelot", ville="Lyon",
    )


@pytest.fixture
def locataire(db):
    return Locataire.objects.create(nom="Martin", prenom="Claire", email="claire.martin@example.fr",
                                    telephone="0611223344")


@pytest.fixture
def creer_bail(bien, locataire):
    def _creer(date_debut=date(2025, 1, 1), date_fin=None, montant_loyer=Decimal('75000'),
               jour_echeance=5, statut='ACTIF', **kwargs):
        return Bail.objects.create(
            bien=kwargs.pop('bien', bien),
            locataire=kwargs.pop('locataire', locataire),
            date_debut=date_debut,
            date_fin=date_fin,
            montant_loyer=montant_loyer,
            jour_echeance=jour_echeance,
            statut=statut,
        )
    return _creer


@pytest.fixture
def bail(creer_bail):
    return creer_bail()


@pytest.fixture
def colocataires(db):
    return [
        Locataire.objects.create(nom="Dupont", prenom="Ali"),
        Locataire.objects.create(nom="Durand", prenom="Berthe"),
        Locataire.objects.create(nom="Petit", prenom="Chloé"),
    ]


@pytest.fixture
def colocation(bien, colocataires):
    colocation = Colocation.objects.create(bien=bien, nom="Coloc Berthelot")
    for locataire, quote_part in zip(colocataires, (Decimal('2'), Decimal('1'), Decimal('1'))):
        Colocataire.objects.create(colocation=colocation, locataire=locataire, quote_part=quote_part)
    return colocation


@pytest.fixture
def api_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client
