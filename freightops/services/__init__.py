"""
FreightOps Services
Allocation, pickup and booking progression logic
"""
