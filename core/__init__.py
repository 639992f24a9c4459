"""
Image Optimizer core.
"""
