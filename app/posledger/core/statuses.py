"""Status vocabularies shared by the ledger, the serial registry and the document workflows."""


class SerialStatus:
    IN_STOCK = "IN_STOCK"
    SOLD = "SOLD"
    RETURNED = "RETURNED"
    DEFECTIVE = "DEFECTIVE"
    TRANSFERRED = "TRANSFERRED"

    ALL = (IN_STOCK, SOLD, RETURNED, DEFECTIVE, TRANSFERRED)


class PurchaseStatus:
    PENDING = "PENDING"
    RECEIVED = "RECEIVED"


class TransferStatus:
    PENDING = "PENDING"
    IN_TRANSIT = "IN_TRANSIT"
    RECEIVED = "RECEIVED"
    REJECTED = "REJECTED"


class ApprovalStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PaymentStatus:
    PAID = "PAID"


class MovementReason:
    PURCHASE_RECEIVE = "PURCHASE_RECEIVE"
    SALE = "SALE"
    TRANSFER_SEND = "TRANSFER_SEND"
    TRANSFER_RECEIVE = "TRANSFER_RECEIVE"
    TRANSFER_REJECT = "TRANSFER_REJECT"
    SUPPLIER_RETURN = "SUPPLIER_RETURN"
    CUSTOMER_REFUND = "CUSTOMER_REFUND"
    STOCK_CORRECTION = "STOCK_CORRECTION"
