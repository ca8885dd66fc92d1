"""
User-safe verification messages. The app's users are Spanish speaking; English is kept for staging.
"""
from verify_callback.config import MESSAGE_LOCALE
from verify_callback.errors import VerificationReason

_MESSAGES = {
    "es": {
        VerificationReason.EXPIRED_LINK: "El enlace de verificación ha expirado o es inválido. Solicita uno nuevo.",
        VerificationReason.ALREADY_VERIFIED: "Este email ya ha sido verificado. Puedes iniciar sesión normalmente.",
        VerificationReason.USER_NOT_FOUND: "No se encontró el usuario. Verifica que te hayas registrado correctamente.",
        VerificationReason.INVALID_LINK: "Enlace de verificación inválido. Verifica que hayas copiado la URL completa.",
        VerificationReason.SERVER_ERROR: "Error interno del servidor. Intenta nuevamente más tarde.",
        VerificationReason.RATE_LIMITED: "Demasiados intentos. Espera un momento antes de intentar nuevamente.",
    },
    "en": {
        VerificationReason.EXPIRED_LINK: "The verification link has expired or is invalid. Request a new one.",
        VerificationReason.ALREADY_VERIFIED: "This email is already verified. You can sign in normally.",
        VerificationReason.USER_NOT_FOUND: "User not found. Check that you signed up correctly.",
        VerificationReason.INVALID_LINK: "Invalid verification link. Make sure you copied the full URL.",
        VerificationReason.SERVER_ERROR: "Internal server error. Please try again later.",
        VerificationReason.RATE_LIMITED: "Too many attempts. Wait a moment before trying again.",
    },
}


def message_for(reason: VerificationReason, locale: str = MESSAGE_LOCALE) -> str:
    catalog = _MESSAGES.get(locale, _MESSAGES["es"])
    return catalog[reason]
