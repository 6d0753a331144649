"""
Meeting scheduling: request/accept/decline lifecycle, auto-pack and ICS export.
"""
