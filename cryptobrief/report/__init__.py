"""
Post-processing of generated analysis text.
"""
