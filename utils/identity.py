from typing import Callable

from security.tokens import generate_opaque_id

MAX_HANDLE_TRIES = 5


def allocate_handle(domain: str, is_taken: Callable[[str], bool], max_tries: int = MAX_HANDLE_TRIES) -> str:
    """
    Draw random handles under `domain` until one is free.
    Used by identity resolvers that auto-provision an account for a
    freshly verified email.
    """
    for _ in range(max_tries):
        handle = generate_opaque_id(domain)
        if not is_taken(handle):
            return handle
    raise RuntimeError(f"Could not allocate a free handle under {domain} after {max_tries} tries")
