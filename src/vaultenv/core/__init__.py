"""
vaultenv core modules.

Includes:
- lexer: Structure-preserving .env parsing
- headers: Generated header framing for .env output
- template: .tpl reference template generation and reading
- provider: Provider client interface and the 1Password CLI adapter
- syncer: Create/update of the Secure Note with field diffing
- errors: Error kinds and factories
- update: Daily update check against PyPI
"""

from . import errors
from . import headers
from . import lexer
from . import template
from . import provider
from . import syncer
from . import update

__all__ = [
    "errors",
    "headers",
    "lexer",
    "template",
    "provider",
    "syncer",
    "update",
]
