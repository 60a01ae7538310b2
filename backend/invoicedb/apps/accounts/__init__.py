"""
Accounts module.

Companies (tenants), users, roles/permissions, login and admin user
provisioning.
"""
