"""Decryption of EC2-generated Windows administrator passwords."""

from __future__ import annotations

import base64
import binascii
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from kitchen_ec2.exceptions import UserError


def load_private_key(key_path: str | Path) -> rsa.RSAPrivateKey:
    """Load the RSA private key of the key pair the instance was launched with.

    Parameters
    ----------
    key_path : str | Path
        Path to a PEM encoded, unencrypted RSA private key

    Returns
    -------
    rsa.RSAPrivateKey
        Loaded private key

    Raises
    ------
    UserError
        If the file is missing or does not hold an RSA private key
    """
    path = Path(key_path).expanduser()

    try:
        key_bytes = path.read_bytes()
    except OSError as e:
        raise UserError(f"Unable to read SSH key {path}: {e}") from e

    try:
        key = serialization.load_pem_private_key(key_bytes, password=None)
    except (ValueError, TypeError) as e:
        raise UserError(f"SSH key {path} is not a usable PEM private key: {e}") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise UserError(
            f"SSH key {path} must be an RSA key to decrypt Windows passwords"
        )

    return key


def decrypt_windows_password(encrypted_password: str, key_path: str | Path) -> str:
    """Decrypt the PasswordData returned by GetPasswordData.

    Parameters
    ----------
    encrypted_password : str
        Base64 encoded, RSA encrypted password data
    key_path : str | Path
        Path to the launch key pair's private key

    Returns
    -------
    str
        Plaintext administrator password
    """
    try:
        ciphertext = base64.b64decode(encrypted_password.strip())
    except binascii.Error as e:
        raise UserError(f"Password data is not valid base64: {e}") from e

    key = load_private_key(key_path)
    return key.decrypt(ciphertext, padding.PKCS1v15()).decode("utf-8")
