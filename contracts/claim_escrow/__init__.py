"""
Claim Escrow Module

Hash-locked, single-use escrow application deployed once per claim code.

Key files:
- claim_escrow.py: PyTeal approval program template and its constants
- build_contracts.py: Writes sample TEAL artifacts for inspection
"""
