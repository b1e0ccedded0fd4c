"""Certificate issuer.

Keep package import side-effect free: storage reads its directory from the
environment on use, not at import time.
"""

__all__: list[str] = []
