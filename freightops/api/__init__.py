"""API layer"""
