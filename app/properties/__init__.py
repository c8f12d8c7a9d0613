"""
Properties app - managed properties and their billable units.

Only the fields the financial ledger relies on are modelled here:
a property owns units, and a unit may carry its own monthly fee.
"""
