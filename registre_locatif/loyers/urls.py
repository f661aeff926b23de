from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    BailViewSet,
    ChargeViewSet,
    EcheanceViewSet,
    LigneRepartitionViewSet,
    PaiementViewSet,
    QuittanceViewSet,
)

router = DefaultRouter()
router.register(r'baux', BailViewSet)
router.register(r'echeances', EcheanceViewSet)
router.register(r'paiements', PaiementViewSet)
router.register(r'quittances', QuittanceViewSet)
router.register(r'charges', ChargeViewSet)
router.register(r'lignes', LigneRepartitionViewSet)

urlpatterns = [
    # API
    path('', include(router.urls)),
]
