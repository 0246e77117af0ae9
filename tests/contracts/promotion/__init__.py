# Promotion Service Contracts

"""
Promotion Service Contract Module

This module contains:
- data_contract.py: test data factories for campaigns, listings and wallets
"""
