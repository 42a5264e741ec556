# ================================
# API PACKAGE INITIALIZATION (api/__init__.py)
# ================================

"""
API Package

Root package für alle API-Routen. Die V1 Router werden in main.py
unter /api/v1 eingebunden.
"""
