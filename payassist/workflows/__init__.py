"""
payassist/workflows

- state.py: TransferWorkflow and related pydantic state models
- transfer_engine.py: TransferDecisionEngine (resolution, eligibility,
  balance checks, shortfall remediation, confirmation gate, execution)
"""
