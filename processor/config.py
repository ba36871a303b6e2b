# processor.config
from pathlib import Path
import os
from typing import Dict, List
from dotenv import load_dotenv

from processor.errors import ConfigurationError

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du processor.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (commercetools, Briqpay)
- Expose les noms des champs personnalisés utilisés sur les carts/orders
- Fournit validate_environment() pour échouer tôt si la configuration est incomplète
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

# commercetools: projet, client API et URLs régionales
CTP_PROJECT_KEY = _clean_env(os.getenv("CTP_PROJECT_KEY") or "")
CTP_CLIENT_ID = _clean_env(os.getenv("CTP_CLIENT_ID") or "")
CTP_CLIENT_SECRET = _clean_env(os.getenv("CTP_CLIENT_SECRET") or "")
CTP_AUTH_URL = _clean_env(os.getenv("CTP_AUTH_URL") or "https://auth.europe-west1.gcp.commercetools.com").rstrip("/")
CTP_API_URL = _clean_env(os.getenv("CTP_API_URL") or "https://api.europe-west1.gcp.commercetools.com").rstrip("/")
CTP_SESSION_URL = _clean_env(os.getenv("CTP_SESSION_URL") or "https://session.europe-west1.gcp.commercetools.com").rstrip("/")

# Briqpay: identifiants Basic auth, URLs (https obligatoire), secret webhook optionnel
BRIQPAY_USERNAME = _clean_env(os.getenv("BRIQPAY_USERNAME") or "")
BRIQPAY_SECRET = _clean_env(os.getenv("BRIQPAY_SECRET") or "")
BRIQPAY_BASE_URL = _clean_env(os.getenv("BRIQPAY_BASE_URL") or "https://playground-api.briqpay.com/v3").rstrip("/")
BRIQPAY_TERMS_URL = _clean_env(os.getenv("BRIQPAY_TERMS_URL") or "")
BRIQPAY_CONFIRMATION_URL = _clean_env(os.getenv("BRIQPAY_CONFIRMATION_URL") or "")
BRIQPAY_WEBHOOK_SECRET = _clean_env(os.getenv("BRIQPAY_WEBHOOK_SECRET") or "")
BRIQPAY_HTTP_TIMEOUT = float(os.getenv("BRIQPAY_HTTP_TIMEOUT", "30"))

# Type personnalisé portant l'id de session Briqpay sur cart/order
BRIQPAY_SESSION_CUSTOM_TYPE_KEY = _clean_env(os.getenv("BRIQPAY_SESSION_CUSTOM_TYPE_KEY") or "briqpay-session-id")
BRIQPAY_SESSION_ID_FIELD = "briqpaySessionId"

# Champs d'order alimentés à partir de la session Briqpay (surchargeables par env)
PSP_META_DATA_FIELDS: Dict[str, str] = {
    "customerFacingReference": os.getenv("BRIQPAY_PSP_META_DATA_CUSTOMER_FACING_REFERENCE_KEY", "briqpayPspMetaDataCustomerFacingReference"),
    "description": os.getenv("BRIQPAY_PSP_META_DATA_DESCRIPTION_KEY", "briqpayPspMetaDataDescription"),
    "type": os.getenv("BRIQPAY_PSP_META_DATA_TYPE_KEY", "briqpayPspMetaDataType"),
    "payerEmail": os.getenv("BRIQPAY_PSP_META_DATA_PAYER_EMAIL_KEY", "briqpayPspMetaDataPayerEmail"),
    "payerFirstName": os.getenv("BRIQPAY_PSP_META_DATA_PAYER_FIRST_NAME_KEY", "briqpayPspMetaDataPayerFirstName"),
    "payerLastName": os.getenv("BRIQPAY_PSP_META_DATA_PAYER_LAST_NAME_KEY", "briqpayPspMetaDataPayerLastName"),
}
TRANSACTION_DATA_FIELDS: Dict[str, str] = {
    "reservationId": os.getenv("BRIQPAY_TRANSACTION_DATA_RESERVATION_ID_KEY", "briqpayTransactionDataReservationId"),
    "secondaryReservationId": os.getenv("BRIQPAY_TRANSACTION_DATA_SECONDARY_RESERVATION_ID_KEY", "briqpayTransactionDataSecondaryReservationId"),
    "pspId": os.getenv("BRIQPAY_TRANSACTION_DATA_PSP_ID_KEY", "briqpayTransactionDataPspId"),
    "pspDisplayName": os.getenv("BRIQPAY_TRANSACTION_DATA_PSP_DISPLAY_NAME_KEY", "briqpayTransactionDataPspDisplayName"),
    "pspIntegrationName": os.getenv("BRIQPAY_TRANSACTION_DATA_PSP_INTEGRATION_NAME_KEY", "briqpayTransactionDataPspIntegrationName"),
}

# Surface HTTP: origines autorisées (motifs avec joker), hôtes, hostname de preview
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "*").split(",") if h.strip()]
PREVIEW_HOSTNAME = _clean_env(os.getenv("PREVIEW_HOSTNAME") or "")
HSTS_ENABLED = (os.getenv("HSTS_ENABLED", "true").lower() == "true")

# Valeurs renvoyées au composant navigateur
PAYMENT_ENVIRONMENT = os.getenv("PAYMENT_ENVIRONMENT", "TEST")
HEALTH_CHECK_TIMEOUT = float(os.getenv("HEALTH_CHECK_TIMEOUT", "5"))

_HTTPS_ONLY = "must use HTTPS"

# (nom, requis, sensible, préfixes acceptés)
_ENV_RULES = [
    ("CTP_PROJECT_KEY", True, False, None),
    ("CTP_CLIENT_ID", True, True, None),
    ("CTP_CLIENT_SECRET", True, True, None),
    ("CTP_AUTH_URL", True, False, None),
    ("CTP_API_URL", True, False, None),
    ("BRIQPAY_USERNAME", True, True, None),
    ("BRIQPAY_SECRET", True, True, None),
    ("BRIQPAY_BASE_URL", True, False, ("https://",)),
    ("BRIQPAY_TERMS_URL", True, False, ("https://",)),
    ("BRIQPAY_CONFIRMATION_URL", True, False, ("https://",)),
    ("BRIQPAY_WEBHOOK_SECRET", False, True, None),
]


class EnvValidationError(ConfigurationError):
    def __init__(self, message: str, missing_vars: List[str], invalid_vars: List[str]):
        super().__init__(message)
        self.missing_vars = missing_vars
        self.invalid_vars = invalid_vars


def validate_environment() -> None:
    """
    Vérifie la présence et le format des variables critiques.
    - Variables requises manquantes/vides -> listées dans missing_vars
    - URLs Briqpay sans https:// -> listées dans invalid_vars
    - ALLOWED_ORIGINS (optionnel): chaque entrée doit commencer par http:// ou https://
    Soulève EnvValidationError si au moins une anomalie est trouvée.
    """
    missing: List[str] = []
    invalid: List[str] = []

    for name, required, _sensitive, prefixes in _ENV_RULES:
        value = _clean_env(os.getenv(name) or "")
        if required and not value:
            missing.append(name)
            continue
        if value and prefixes and not value.startswith(prefixes):
            invalid.append(f"{name}: {name} {_HTTPS_ONLY}")

    origins = os.getenv("ALLOWED_ORIGINS")
    if origins:
        entries = [o.strip() for o in origins.split(",")]
        if not all(o.startswith(("http://", "https://")) for o in entries):
            invalid.append("ALLOWED_ORIGINS: ALLOWED_ORIGINS must be comma-separated URLs")

    if missing or invalid:
        parts = []
        if missing:
            parts.append(f"Missing required environment variables: {', '.join(missing)}")
        if invalid:
            parts.append(f"Invalid environment variables: {'; '.join(invalid)}")
        raise EnvValidationError(". ".join(parts), missing, invalid)


def environment_status() -> Dict[str, str]:
    """Photographie de la configuration pour les logs (secrets masqués)."""
    status: Dict[str, str] = {}
    for name, _required, sensitive, _prefixes in _ENV_RULES:
        value = os.getenv(name)
        if sensitive:
            status[name] = "[SET]" if value else "[NOT SET]"
        else:
            status[name] = value or "[NOT SET]"
    status["ALLOWED_ORIGINS"] = os.getenv("ALLOWED_ORIGINS") or "[NOT SET]"
    return status
