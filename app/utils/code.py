# app/utils/code.py
import secrets

VERIFICATION_CODE_LENGTH = 6


def generate_verification_code(length: int = VERIFICATION_CODE_LENGTH) -> str:
    """Code numérique à usage unique (vérification email, réinitialisation)"""
    return "".join(secrets.choice("0123456789") for _ in range(length))
