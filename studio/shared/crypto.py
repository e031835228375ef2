"""Encryption of stored integration credentials"""

import base64
import hashlib

from cryptography.fernet import Fernet

from ..config import SECRET_KEY

# Fernet needs 32 url-safe base64 bytes; derive them from SECRET_KEY
cipher_suite = Fernet(base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest()))


def encrypt_credential(credential: str) -> str:
    """Encrypt a credential for storage"""
    return cipher_suite.encrypt(credential.encode()).decode()


def decrypt_credential(encrypted_credential: str) -> str:
    """Decrypt a stored credential"""
    return cipher_suite.decrypt(encrypted_credential.encode()).decode()
