from aeclient.providers.credentials import (
    CachingCredentialProvider,
    CommandCredentialProvider,
    CredentialProvider,
    PromptCredentialProvider,
)

__all__ = [
    "CredentialProvider",
    "CachingCredentialProvider",
    "CommandCredentialProvider",
    "PromptCredentialProvider",
]
