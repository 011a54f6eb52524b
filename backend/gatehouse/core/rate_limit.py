from slowapi import Limiter
from slowapi.util import get_remote_address

# Coarse per-IP throttle for the login route. The username-keyed lockout lives
# in gatehouse.security.gate and does not depend on this.
# If later behind a proxy, parse X-Forwarded-For here.
limiter = Limiter(key_func=get_remote_address)
