"""RentBill: monthly rent billing service."""
