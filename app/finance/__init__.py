"""
Finance app - the financial ledger of a managed property.

This app handles:
- Income and expense transactions and their approval workflow
- Cash confirmation and mixed PIX + cash settlement
- The authoritative running balance of each property
- Append-only audit history of every privileged action
- Monthly condominium fee generation for all units of a property

Related apps:
    - properties: Property and Unit records transactions point to
    - core: ServiceResult, BaseService and the exception hierarchy

Usage:
    from finance.services import LedgerService

    result = LedgerService.approve(transaction_id, actor)
    if not result.success:
        log.warning(result.error_code)

    report = LedgerService.get_balance(property_id, actor).data
"""
