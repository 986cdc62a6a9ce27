"""
Publisher module.
"""
