"""
Downloads library: links to member resources, searchable by title, description and category.
"""
