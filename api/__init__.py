"""
api — HTTP surface over the provider gateway.

Routers: auth.py (/api/toss/auth), user.py (/api/toss/user),
push.py (/api/toss/push), users.py (/api/users).
"""
