from slowapi import Limiter
from slowapi.util import get_remote_address

# Process-wide, keyed by client address
limiter = Limiter(key_func=get_remote_address)
