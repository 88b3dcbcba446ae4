"""
Storage backends for the Device Events backend.
"""
