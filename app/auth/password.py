# app/auth/password.py
import re
import logging

import bcrypt

logger = logging.getLogger(__name__)

# Au moins 8 caractères avec majuscule, minuscule, chiffre et caractère spécial
PASSWORD_PATTERN = re.compile(r"^(?=.*?[A-Z])(?=.*?[a-z])(?=.*?[0-9])(?=.*?[#?!@$%^&*-]).{8,}$")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """
    Vérifie un mot de passe contre son hash bcrypt.
    Les hash au format PHP ($2y$) sont acceptés en les ramenant au préfixe $2b$.
    """
    if not hashed:
        return False
    if hashed.startswith("$2y$"):
        hashed = "$2b$" + hashed[4:]
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError as e:
        logger.warning(f"Hash de mot de passe invalide: {e}")
        return False


def is_strong_password(password: str) -> bool:
    return bool(PASSWORD_PATTERN.match(password or ""))
