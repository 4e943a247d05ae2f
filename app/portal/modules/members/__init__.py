"""
Administration of member accounts.

- Directory with role, agency-owner, city, state and text filters plus column sorting
- Role badges add or delete exactly one (user, role) pair
- Team roles are tied to agency owners through team_agency_owners
"""
