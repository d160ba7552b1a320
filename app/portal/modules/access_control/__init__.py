"""
Access control module: navigation modules, tabs and per-role grants.

Scope:
- Two-level catalogue: parent module -> child module -> tab (parents are pure containers)
- Per-role grants on modules and tabs, optionally carrying an action set
  (null = visible, read-only)
- Resolution of an entry route to the first page a role may reach
- Grant/revoke with parent/child consistency and orphan cleanup, audited

Hard constraints:
- The role is always passed explicitly; nothing here reads the logged-in user
- Permission JSON is decoded only by the column type in permissions.py
"""
