"""
AgriSupply Business Services
Intake, reference data, storage, process tracking and payments
"""
