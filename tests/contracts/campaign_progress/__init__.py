# Campaign Progress Service Contracts

"""
Campaign Progress Service Contract Module

This module contains:
- data_contract.py: test data factories for campaigns, criteria, policies
  and links, built on the service's own models
"""
