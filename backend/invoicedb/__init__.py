"""invoicedb: invoicing and AR/AP backend."""
