"""CREATE TABLE statements for subscribers and notice records."""

LINE_USERS = """
CREATE TABLE line_users (
    user_id       VARCHAR(64) PRIMARY KEY,
    display_name  VARCHAR(255),
    status        VARCHAR(20) NOT NULL DEFAULT 'active',
    created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT ck_line_users_status CHECK (status IN ('active', 'blocked'))
);
"""

NOTICE_TRANSACTIONS = """
CREATE TABLE notice_transactions (
    notice_id        UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id          VARCHAR(64) NOT NULL,
    statement_month  VARCHAR(64) NOT NULL,
    transaction_data JSONB NOT NULL,
    total_amount     NUMERIC NOT NULL,
    qr_code_url      VARCHAR(2048) NOT NULL,
    promptpay_id     VARCHAR(20) NOT NULL,
    payment_ref      VARCHAR(20) NOT NULL,
    created_at       TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

INDEXES = [
    "CREATE INDEX idx_line_users_status ON line_users(status);",
    "CREATE INDEX ix_notice_transactions_user_id "
    "ON notice_transactions(user_id, created_at DESC);",
]

ALL = [LINE_USERS, NOTICE_TRANSACTIONS, *INDEXES]
