from sqlalchemy.dialects import postgresql, sqlite

from rentbill.models.bill import Bill
from rentbill.models.room import Room


def test_json_columns_match_the_migration():
    for column in (Bill.__table__.c.charges, Room.__table__.c.additional_charges):
        assert column.type.compile(dialect=postgresql.dialect()) == "JSONB"
        assert column.type.compile(dialect=sqlite.dialect()) == "JSON"
