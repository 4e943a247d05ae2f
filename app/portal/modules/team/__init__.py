"""
Team progress: course enrollments for the members a manager, owner or administrator can see.
"""
