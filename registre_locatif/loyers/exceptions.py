"""
Exceptions du registre locatif.

Chaque exception identifie l'invariant violé via un `code` stable, repris tel
quel dans les réponses de l'API.
"""
from datetime import date


class RegistreError(Exception):
    """Erreur de validation du registre, toujours corrigeable par l'appelant."""

    code = "REGISTRE"

    def __init__(self, message):
        self.message = message
        super().__init__(message)


class MontantInvalideError(RegistreError):
    """Exception levée quand un montant de paiement n'est pas strictement positif."""

    code = "MONTANT_INVALIDE"

    def __init__(self, montant):
        self.montant = montant
        super().__init__(f"Le montant doit être strictement positif (reçu : {montant}).")


class EcheanceClotureeError(RegistreError):
    """Exception levée quand on enregistre un paiement sur une échéance PAYE ou ANNULE."""

    code = "ECHEANCE_CLOTUREE"

    def __init__(self, echeance, statut):
        self.echeance = echeance
        self.statut = statut
        super().__init__(
            f"L'échéance du {_format_date(echeance.date_echeance)} est au statut {statut} : "
            "aucun paiement ne peut plus y être enregistré."
        )


class SourceInvalideError(RegistreError):
    code = "SOURCE_INVALIDE"

    def __init__(self, source):
        self.source = source
        super().__init__(f"Source d'enregistrement inconnue : {source!r} (attendu TENANT ou OWNER).")


class ModePaiementInvalideError(RegistreError):
    code = "MODE_PAIEMENT_INVALIDE"

    def __init__(self, mode):
        self.mode = mode
        super().__init__(f"Mode de paiement inconnu : {mode!r}.")


class BailInactifError(RegistreError):
    """Exception levée quand une opération réservée aux baux en cours vise un bail clos."""

    code = "BAIL_INACTIF"

    def __init__(self, bail, message=None):
        self.bail = bail
        super().__init__(message or (
            f"Le bail {bail.pk} est au statut {bail.statut} : "
            "l'échéancier ne peut être généré que pour un bail actif, en préavis ou en renouvellement."
        ))


class HorizonDepasseError(RegistreError):
    """Exception levée quand la date de fin du bail précède l'horizon demandé."""

    code = "HORIZON_DEPASSE"

    def __init__(self, bail, annee_cible):
        self.bail = bail
        self.annee_cible = annee_cible
        super().__init__(
            f"Le bail {bail.pk} se termine le {_format_date(bail.date_fin)}, "
            f"avant l'année {annee_cible} demandée."
        )


class ExtensionImpossibleError(RegistreError):
    """Exception levée quand l'horizon actuel n'est pas contigu à l'année demandée."""

    code = "EXTENSION_IMPOSSIBLE"

    def __init__(self, bail, annee_cible, derniere_echeance=None):
        self.bail = bail
        self.annee_cible = annee_cible
        self.derniere_echeance = derniere_echeance

        if derniere_echeance is None:
            message = f"Le bail {bail.pk} n'a pas encore d'échéancier : générez-le avant de le prolonger."
        else:
            message = (
                f"Impossible de prolonger le bail {bail.pk} sur {annee_cible} : "
                f"la dernière échéance est au {_format_date(derniere_echeance)}, "
                f"pas en décembre {annee_cible - 1}."
            )
        super().__init__(message)


class RepartitionInvalideError(RegistreError):
    code = "REPARTITION_INVALIDE"


class RepartitionManuelleError(RegistreError):
    """Exception levée quand la somme d'une répartition manuelle ne correspond pas au total."""

    code = "REPARTITION_MANUELLE"

    def __init__(self, total, somme):
        self.total = total
        self.somme = somme
        self.ecart = somme - total
        super().__init__(
            f"La répartition manuelle totalise {somme} pour une charge de {total} "
            f"(écart : {self.ecart:+})."
        )


class LigneSoldeeError(RegistreError):
    code = "LIGNE_SOLDEE"

    def __init__(self, ligne):
        self.ligne = ligne
        super().__init__(f"La part de {ligne.colocataire} sur cette charge est déjà payée.")


class QuittanceImpossibleError(RegistreError):
    """Exception levée quand on demande une quittance pour une échéance non réglée."""

    code = "QUITTANCE_IMPOSSIBLE"

    def __init__(self, echeance, statut):
        self.echeance = echeance
        self.statut = statut
        super().__init__(
            f"Aucune quittance ne peut être émise pour l'échéance du "
            f"{_format_date(echeance.date_echeance)} (statut {statut})."
        )


class EcheanceProtegeeError(RegistreError):
    """Exception levée sur une tentative de suppression ou d'annulation interdite."""

    code = "ECHEANCE_PROTEGEE"


class ChargeInvalideError(RegistreError):
    code = "CHARGE_INVALIDE"


class CautionInvalideError(RegistreError):
    """Exception levée quand un dépôt de garantie est absent, déjà restitué ou mal restitué."""

    code = "CAUTION_INVALIDE"


class ParametreInvalideError(RegistreError):
    code = "PARAMETRE_INVALIDE"


def _format_date(valeur):
    if isinstance(valeur, date):
        return valeur.strftime('%d/%m/%Y')
    return str(valeur)
