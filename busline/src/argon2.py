from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError

passwordHasher = PasswordHasher(encoding="utf-8")


def makePassword(password: str) -> str:
    """
    Hash a plain-text password using Argon2.

    Args:
        password (str): The plain-text password to be hashed.

    Returns:
        str: The Argon2 hash of the given password.
    """
    return passwordHasher.hash(password)


def checkPassword(password: str, hashedPassword: str) -> bool:
    """
    Verify a plain-text password against a stored Argon2 hash.

    Malformed hashes never match.
    """
    try:
        return passwordHasher.verify(hashedPassword, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def needsRehash(hashedPassword: str) -> bool:
    """True if the hash was made with parameters older than the current ones."""
    return passwordHasher.check_needs_rehash(hashedPassword)
