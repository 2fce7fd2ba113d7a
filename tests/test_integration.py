"""End-to-end tests: DBML text -> transform result -> live diagram model."""
from __future__ import annotations

from dbml_canvas import SchemaGraph, transform_dbml, validate_dbml
from dbml_canvas.graph.types import GraphStatus, Position
from dbml_canvas.types import DefaultValue

SAMPLE = """Table users {
  id integer [pk, increment]
  username varchar(50) [unique, not null]
  email varchar(255) [unique, not null]
  age integer [default: 18, note: 'Must be 18+']
  balance decimal(10,2) [default: 0.00]
  status enum('active', 'inactive') [default: 'active']
  created_at timestamp [default: `now()`]
  updated_at timestamp
}

Table posts {
  id integer [pk, increment]
  user_id integer [not null, note: 'References users.id']
  title varchar(200) [not null]
  content text
  created_at timestamp [default: `now()`]
}

Ref: posts.user_id > users.id [delete: CASCADE, update: CASCADE]
"""

SHOP = """
Project shop {
  database_type: 'PostgreSQL'
}

Enum ecommerce.order_status {
  created
  paid
  shipped [note: 'left the warehouse']
}

Table ecommerce.merchants {
  id int
  country_code int
  merchant_name varchar

  indexes {
    (id, country_code) [pk]
  }
}

Table ecommerce.merchant_periods {
  id int [pk]
  merchant_id int
  country_code int
  status order_status [default: 'created']
}

Table users as U {
  id int [pk]
  full_name varchar
}

Table ecommerce.orders {
  id int [pk]
  user_id int [ref: > U.id]
  status ecommerce.order_status
}

Ref: ecommerce.merchant_periods.(merchant_id, country_code) > ecommerce.merchants.(id, country_code)

TableGroup shop {
  ecommerce.orders
  U
}
"""


class TestSampleSchema:
    def test_transform(self):
        result = transform_dbml(SAMPLE)
        assert result.warnings == ()
        users, posts = result.tables
        assert [c.name for c in users.columns][:3] == ["id", "username", "email"]

        age = users.column("age")
        assert age.type == "int"
        assert age.default == DefaultValue(18, "number")
        assert age.note == "Must be 18+"

        balance = users.column("balance")
        assert (balance.precision, balance.scale) == (10, 2)
        assert balance.default == DefaultValue(0.0, "number")

        assert users.column("status").enum_values == ["active", "inactive"]
        assert users.column("created_at").default.kind == "expression"

        (rel,) = result.relationships
        assert (rel.parent.table, rel.child.table) == ("users", "posts")
        assert rel.on_delete == "CASCADE"
        assert posts.column("user_id").foreign_keys[0].on_update == "CASCADE"

    def test_sql(self):
        sql = transform_dbml(SAMPLE).exported_text
        assert '"id" serial PRIMARY KEY' in sql
        assert '"username" varchar(50) UNIQUE NOT NULL' in sql
        assert "\"status\" ENUM('active', 'inactive') DEFAULT 'active'" in sql
        assert '"created_at" timestamp DEFAULT now()' in sql
        assert 'COMMENT ON COLUMN "users"."age" IS \'Must be 18+\';' in sql
        assert sql.rstrip().endswith(
            'REFERENCES "users" ("id") ON DELETE CASCADE ON UPDATE CASCADE;'
        )

    def test_validates(self):
        result = validate_dbml(SAMPLE)
        assert result.is_valid
        assert result.errors == []

    def test_diagram(self):
        graph = SchemaGraph()
        graph.submit(SAMPLE)
        assert graph.status is GraphStatus.READY
        assert [n.id for n in graph.nodes] == ["public.users", "public.posts"]
        assert graph.edges[0].source_handle == "public.users-id-source"
        assert graph.edges[0].target_handle == "public.posts-user_id-target"


class TestMultiSchema:
    def test_transform(self):
        result = transform_dbml(SHOP)
        assert result.warnings == ()
        assert {(t.schema, t.name) for t in result.tables} == {
            ("ecommerce", "merchants"),
            ("ecommerce", "merchant_periods"),
            ("ecommerce", "orders"),
            ("public", "users"),
        }

        merchants = next(t for t in result.tables if t.name == "merchants")
        assert all(c.primary_key and not c.nullable for c in merchants.columns[:2])
        assert not merchants.column("merchant_name").primary_key

        periods = next(t for t in result.tables if t.name == "merchant_periods")
        assert periods.column("status").enum_values == ["created", "paid", "shipped"]
        assert periods.column("status").default == DefaultValue("created", "string")

        orders = next(t for t in result.tables if t.name == "orders")
        assert orders.column("status").enum_values == ["created", "paid", "shipped"]
        assert orders.column("user_id").foreign_keys[0].table == "users"

        assert len(result.relationships) == 3
        composite = [r for r in result.relationships if r.child.table == "merchant_periods"]
        assert sorted(r.child.column for r in composite) == ["country_code", "merchant_id"]

    def test_diagram_and_search(self):
        graph = SchemaGraph()
        graph.submit(SHOP)
        assert {n.id for n in graph.nodes} == {
            "ecommerce.merchants",
            "ecommerce.merchant_periods",
            "public.U",
            "ecommerce.orders",
        }
        assert len(graph.edges) == 3
        assert graph.node("ecommerce.merchants").source_columns == ["id", "country_code"]

        nodes, edges = graph.filter("merchant")
        assert {n.id for n in nodes} == {"ecommerce.merchants", "ecommerce.merchant_periods"}
        assert len(edges) == 2

    def test_edit_cycle(self):
        graph = SchemaGraph()
        graph.submit(SHOP)
        graph.auto_layout("LR")
        laid_out = graph.positions()
        assert graph.can_undo

        edited = SHOP + "\nTable ecommerce.refunds {\n  order_id int [ref: > ecommerce.orders.id]\n}\n"
        graph.submit(edited, preserve_positions=True)
        assert len(graph.nodes) == 5
        for node_id, position in laid_out.items():
            assert graph.node(node_id).position == position
        assert graph.node("ecommerce.refunds").position == Position(1080, 120)

        graph.undo()
        assert graph.node("ecommerce.refunds").position == Position(1080, 120)
