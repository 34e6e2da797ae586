"""
vaultenv - Sync .env files with 1Password

Pushes local .env variables into a 1Password Secure Note and writes a .tpl
reference template; pulls the template back into a fresh .env file.
"""

__version__ = "0.1.0"

from .core import lexer, headers, template, syncer, provider, errors

__all__ = [
    "lexer",
    "headers",
    "template",
    "syncer",
    "provider",
    "errors",
]
