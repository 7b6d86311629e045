"""Users app package.

Identity and role data the marketplace core needs: a custom user model
with the CUSTOMER, PROFESSIONAL and ADMIN roles, and the professional
profile that carries the running account balance credited by the
settlement ledger. Use ``apps.users.models.User`` as the AUTH_USER_MODEL
throughout the project.
"""
