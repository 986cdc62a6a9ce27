"""
Consumer worker module.
"""
