"""
Wallet Pass Errors

Every failure of the pass pipeline is one of these. Each is raised by the
component that detects it and propagated unchanged to the caller. Nothing
here is retried: given the same inputs, the same error comes back.
"""
from typing import List, Optional


class WalletPassError(Exception):
    """Base exception for wallet pass generation"""
    code = "WALLET_PASS_ERROR"


class PassConfigurationError(WalletPassError):
    """Signing material or identifiers are not configured"""
    code = "APPLE_WALLET_NOT_CONFIGURED"

    def __init__(self, message: str, missing_keys: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_keys = list(missing_keys or [])


class CredentialError(WalletPassError):
    """PKCS#12 container or intermediate certificate cannot be used"""
    code = "CREDENTIAL_ERROR"


class CredentialEncodingError(CredentialError):
    """Input is not valid base64"""
    code = "CREDENTIAL_ENCODING"


class CredentialFormatError(CredentialError):
    """Input decodes but is not a well-formed PKCS#12 / X.509 structure"""
    code = "CREDENTIAL_FORMAT"


class CredentialPasswordError(CredentialError):
    """PKCS#12 container could not be decrypted with the supplied password"""
    code = "CREDENTIAL_PASSWORD"


class CredentialMissingError(CredentialError):
    """Container holds no private key, or no certificate matching it"""
    code = "CREDENTIAL_MISSING"

    def __init__(self, message: str, missing: str):
        super().__init__(message)
        self.missing = missing  # "private_key" | "certificate"


class CredentialAmbiguityError(CredentialError):
    """Container holds more than one candidate key or leaf certificate"""
    code = "CREDENTIAL_AMBIGUOUS"


class DescriptorError(WalletPassError):
    """Card record cannot be turned into pass.json"""
    code = "DESCRIPTOR_INVALID"


class AssetError(WalletPassError):
    """Required raster asset is unusable and no placeholder could stand in"""
    code = "ASSET_ERROR"


class AssetFetchError(AssetError):
    """Remote card image could not be retrieved"""
    code = "ASSET_FETCH_FAILED"

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class SigningError(WalletPassError):
    """Manifest signature could not be produced"""
    code = "PASS_SIGNING_FAILED"


class KeyCertificateMismatchError(SigningError):
    """Private key does not belong to the leaf certificate"""
    code = "KEY_CERTIFICATE_MISMATCH"


class PackagingError(WalletPassError):
    """The .pkpass ZIP could not be written"""
    code = "PASS_PACKAGING_FAILED"
