"""Append-only enforcement for notice records."""

FN_RAISE_IMMUTABLE = """
CREATE OR REPLACE FUNCTION raise_immutable_error()
RETURNS TRIGGER AS $$
BEGIN
    RAISE EXCEPTION 'Rows in table % are immutable', TG_TABLE_NAME;
END;
$$ LANGUAGE plpgsql;
"""

FUNCTIONS_ALL = [FN_RAISE_IMMUTABLE]

TRIGGERS_ALL = [
    "CREATE TRIGGER trg_notice_transactions_immutable "
    "BEFORE UPDATE OR DELETE ON notice_transactions "
    "FOR EACH ROW EXECUTE FUNCTION raise_immutable_error();",
]
