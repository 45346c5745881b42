"""Tests for converting dbt models and metrics into tables and explores."""

import logging
from typing import Any

import pytest

from explore_compiler.adapters import SupportedDbtAdapter
from explore_compiler.compiler import (
    convert_dbt_metric_to_metric,
    convert_dimension,
    convert_explores,
    convert_table,
    model_can_use_metric,
)
from explore_compiler.domain import (
    DimensionType,
    Explore,
    ExploreError,
    FilterOperator,
    LineageNodeDependency,
    MetricType,
    TimeFrames,
)
from explore_compiler.errors import (
    MissingCatalogEntryError,
    NonCompiledModelError,
    ParseError,
)
from explore_compiler.ingestion.dbt import DbtMetric, DbtModelNode

POSTGRES = SupportedDbtAdapter.POSTGRES
TRANSLATOR_LOGGER = "explore_compiler.compiler.translator"


def make_model(
    name: str = "orders",
    columns: dict[str, dict[str, Any]] | None = None,
    compiled: bool = True,
    relation_name: str | None = "default",
    depends_on: list[str] | None = None,
    meta: dict[str, Any] | None = None,
    tags: list[str] | None = None,
) -> DbtModelNode:
    """Build a model node; columns map name -> extra column fields."""
    return DbtModelNode.model_validate(
        {
            "unique_id": f"model.shop.{name}",
            "name": name,
            "database": "analytics",
            "schema": "public",
            "relation_name": (
                f'"analytics"."public"."{name}"'
                if relation_name == "default"
                else relation_name
            ),
            "columns": {
                col: {"name": col, **fields} for col, fields in (columns or {}).items()
            },
            "compiled": compiled,
            "depends_on": {"nodes": [f"model.shop.{d}" for d in depends_on or []]},
            "meta": meta or {},
            "tags": tags or [],
        }
    )


def make_metric(name: str, **fields: Any) -> DbtMetric:
    data: dict[str, Any] = {"name": name, "calculation_method": "sum"}
    data.update(fields)
    return DbtMetric.model_validate(data)


class TestConvertDimension:
    """Tests for convert_dimension."""

    def test_catalog_type_and_default_sql(self) -> None:
        model = make_model(columns={"amount": {"data_type": "number"}})
        dim = convert_dimension(POSTGRES, model, "Orders", model.columns["amount"])

        assert dim.name == "amount"
        assert dim.type == DimensionType.NUMBER
        assert dim.sql == "${TABLE}.amount"
        assert dim.label == "Amount"
        assert dim.table == "orders"
        assert dim.table_label == "Orders"
        assert dim.group is None
        assert dim.time_interval is None

    def test_defaults_to_string(self) -> None:
        model = make_model(columns={"status": {}})
        dim = convert_dimension(POSTGRES, model, "Orders", model.columns["status"])
        assert dim.type == DimensionType.STRING

    def test_override_takes_priority_over_catalog(self) -> None:
        model = make_model(
            columns={
                "code": {
                    "data_type": "number",
                    "meta": {
                        "dimension": {
                            "type": "string",
                            "name": "order_code",
                            "label": "Code",
                            "sql": "UPPER(${TABLE}.code)",
                            "hidden": True,
                            "group_label": "Identifiers",
                        }
                    },
                }
            }
        )
        dim = convert_dimension(POSTGRES, model, "Orders", model.columns["code"])

        assert dim.type == DimensionType.STRING
        assert dim.name == "order_code"
        assert dim.label == "Code"
        assert dim.sql == "UPPER(${TABLE}.code)"
        assert dim.hidden is True
        assert dim.group_label == "Identifiers"

    def test_unrecognised_type_raises(self) -> None:
        model = make_model(columns={"geo": {"data_type": "geography"}})
        with pytest.raises(MissingCatalogEntryError) as exc_info:
            convert_dimension(POSTGRES, model, "Orders", model.columns["geo"])

        message = str(exc_info.value)
        assert '"geography"' in message
        assert '"geo"' in message
        assert '"orders"' in message
        assert "string, number, timestamp, date, boolean" in message

    def test_snowflake_timestamp_normalised_to_utc(self) -> None:
        model = make_model(columns={"created_at": {"data_type": "timestamp"}})
        dim = convert_dimension(
            SupportedDbtAdapter.SNOWFLAKE, model, "Orders", model.columns["created_at"]
        )
        assert dim.sql == (
            "TO_TIMESTAMP_NTZ(CONVERT_TIMEZONE('UTC', ${TABLE}.created_at))"
        )

    def test_timestamp_passthrough_on_other_warehouses(self) -> None:
        model = make_model(columns={"created_at": {"data_type": "timestamp"}})
        for adapter in (SupportedDbtAdapter.POSTGRES, SupportedDbtAdapter.BIGQUERY):
            dim = convert_dimension(adapter, model, "Orders", model.columns["created_at"])
            assert dim.sql == "${TABLE}.created_at"

    def test_time_interval_dimension(self) -> None:
        model = make_model(columns={"created_at": {"data_type": "timestamp"}})
        dim = convert_dimension(
            POSTGRES,
            model,
            "Orders",
            model.columns["created_at"],
            time_interval=TimeFrames.MONTH,
        )

        assert dim.name == "created_at_month"
        assert dim.label == "Created at month"
        assert dim.sql == "DATE_TRUNC('MONTH', ${TABLE}.created_at)"
        assert dim.type == DimensionType.DATE
        assert dim.group == "created_at"
        assert dim.time_interval == "MONTH"

    def test_bigquery_truncation(self) -> None:
        model = make_model(
            columns={
                "created_at": {"data_type": "timestamp"},
                "order_date": {"data_type": "date"},
            }
        )
        bigquery = SupportedDbtAdapter.BIGQUERY

        ts = convert_dimension(
            bigquery, model, "Orders", model.columns["created_at"],
            time_interval=TimeFrames.DAY,
        )
        date = convert_dimension(
            bigquery, model, "Orders", model.columns["order_date"],
            time_interval=TimeFrames.WEEK,
        )
        assert ts.sql == "DATETIME_TRUNC(${TABLE}.created_at, DAY)"
        assert date.sql == "DATE_TRUNC(${TABLE}.order_date, WEEK)"

    def test_sub_day_interval_stays_timestamp(self) -> None:
        model = make_model(columns={"created_at": {"data_type": "timestamp"}})
        dim = convert_dimension(
            POSTGRES, model, "Orders", model.columns["created_at"],
            time_interval=TimeFrames.HOUR,
        )
        assert dim.type == DimensionType.TIMESTAMP
        assert dim.sql == "DATE_TRUNC('HOUR', ${TABLE}.created_at)"

    def test_raw_interval_keeps_sql(self) -> None:
        model = make_model(columns={"created_at": {"data_type": "timestamp"}})
        dim = convert_dimension(
            POSTGRES, model, "Orders", model.columns["created_at"],
            time_interval=TimeFrames.RAW,
        )
        assert dim.name == "created_at_raw"
        assert dim.sql == "${TABLE}.created_at"
        assert dim.type == DimensionType.TIMESTAMP


class TestConvertDbtMetric:
    """Tests for convert_dbt_metric_to_metric."""

    def test_bare_identifier_expression_is_a_column(self) -> None:
        metric = make_metric(
            "total_revenue", calculation_method="sum", expression="amount"
        )
        result = convert_dbt_metric_to_metric(metric, "orders", "Orders")

        assert result.name == "total_revenue"
        assert result.sql == "${TABLE}.amount"
        assert result.type == MetricType.SUM
        assert result.label == "Total revenue"
        assert result.table == "orders"

    def test_sql_expression_used_verbatim(self) -> None:
        metric = make_metric("double_revenue", expression="${TABLE}.amount * 2")
        result = convert_dbt_metric_to_metric(metric, "orders", "Orders")
        assert result.sql == "${TABLE}.amount * 2"

    def test_no_expression_defaults_to_metric_name(self) -> None:
        metric = make_metric("amount", calculation_method="max")
        result = convert_dbt_metric_to_metric(metric, "orders", "Orders")
        assert result.sql == "${TABLE}.amount"
        assert result.type == MetricType.MAX

    def test_unknown_calculation_method(self) -> None:
        metric = make_metric(
            "weird", unique_id="metric.shop.weird", calculation_method="sumx"
        )
        with pytest.raises(ParseError) as exc_info:
            convert_dbt_metric_to_metric(metric, "orders", "Orders")
        assert "metric.shop.weird" in str(exc_info.value)
        assert "sumx" in str(exc_info.value)

    def test_expression_metric_substitutes_references(self) -> None:
        metric = make_metric(
            "net",
            calculation_method="expression",
            expression="total_revenue - total_cost",
            metrics=[["total_revenue"], ["total_cost"]],
        )
        result = convert_dbt_metric_to_metric(metric, "orders", "Orders")

        assert result.type == MetricType.NUMBER
        assert result.sql == "${total_revenue} - ${total_cost}"

    def test_expression_substitution_is_whole_word(self) -> None:
        metric = make_metric(
            "mixed",
            calculation_method="expression",
            expression="revenue + total_revenue",
            metrics=[["revenue"]],
        )
        result = convert_dbt_metric_to_metric(metric, "orders", "Orders")
        assert result.sql == "${revenue} + total_revenue"

    def test_expression_metric_requires_expression(self) -> None:
        metric = make_metric("empty", calculation_method="expression")
        with pytest.raises(ParseError, match="must have the sql field set"):
            convert_dbt_metric_to_metric(metric, "orders", "Orders")

    def test_filters_wrap_sql_in_case_when(self) -> None:
        metric = make_metric(
            "completed_revenue",
            expression="amount",
            filters=[
                {"field": "status", "operator": "=", "value": "'completed'"},
                {"field": "amount", "operator": ">", "value": 0},
            ],
        )
        result = convert_dbt_metric_to_metric(metric, "orders", "Orders")
        assert result.sql == (
            "CASE WHEN (${TABLE}.status = 'completed') AND (${TABLE}.amount > 0) "
            "THEN ${TABLE}.amount ELSE NULL END"
        )

    def test_meta_display_hints(self) -> None:
        metric = make_metric(
            "total_revenue",
            expression="amount",
            meta={
                "hidden": True,
                "format": "usd",
                "round": 2,
                "group_label": "Revenue",
                "show_underlying_values": ["status"],
                "filters": [{"is_test": False}],
            },
        )
        result = convert_dbt_metric_to_metric(metric, "orders", "Orders")

        assert result.hidden is True
        assert result.format == "usd"
        assert result.round == 2
        assert result.group_label == "Revenue"
        assert result.show_underlying_values == ["status"]
        assert len(result.filters) == 1
        assert result.filters[0].target.field_ref == "is_test"
        assert result.filters[0].operator == FilterOperator.EQUALS
        assert result.filters[0].values == [False]


class TestConvertTable:
    """Tests for convert_table."""

    def test_single_number_column(self) -> None:
        model = make_model(columns={"amount": {"data_type": "number"}})
        table = convert_table(POSTGRES, model, [])

        assert list(table.dimensions) == ["amount"]
        dim = table.dimensions["amount"]
        assert dim.type == DimensionType.NUMBER
        assert dim.sql == "${TABLE}.amount"
        assert table.metrics == {}
        assert table.name == "orders"
        assert table.label == "Orders"
        assert table.database == "analytics"
        assert table.schema_name == "public"
        assert table.sql_table == '"analytics"."public"."orders"'
        assert table.description == "orders table"
        assert table.lineage_graph == {}

    def test_timestamp_default_intervals(self) -> None:
        model = make_model(columns={"created_at": {"data_type": "timestamp"}})
        table = convert_table(POSTGRES, model, [])

        assert list(table.dimensions) == [
            "created_at",
            "created_at_raw",
            "created_at_day",
            "created_at_week",
            "created_at_month",
            "created_at_year",
        ]
        for key, dim in table.dimensions.items():
            if key == "created_at":
                continue
            assert dim.name == key
            assert dim.group == "created_at"

    def test_date_default_intervals(self) -> None:
        model = make_model(columns={"order_date": {"data_type": "date"}})
        table = convert_table(POSTGRES, model, [])

        assert list(table.dimensions) == [
            "order_date",
            "order_date_day",
            "order_date_week",
            "order_date_month",
            "order_date_year",
        ]

    def test_explicit_intervals_used_verbatim(self) -> None:
        model = make_model(
            columns={
                "created_at": {
                    "data_type": "timestamp",
                    "meta": {"dimension": {"time_intervals": ["day", "QUARTER"]}},
                }
            }
        )
        table = convert_table(POSTGRES, model, [])
        assert list(table.dimensions) == [
            "created_at",
            "created_at_day",
            "created_at_quarter",
        ]

    def test_intervals_off(self) -> None:
        model = make_model(
            columns={
                "created_at": {
                    "data_type": "timestamp",
                    "meta": {"dimension": {"time_intervals": "OFF"}},
                }
            }
        )
        table = convert_table(POSTGRES, model, [])
        assert list(table.dimensions) == ["created_at"]

    def test_invalid_interval_names_the_value(self) -> None:
        model = make_model(
            columns={
                "order_date": {
                    "data_type": "date",
                    "meta": {"dimension": {"time_intervals": ["DAY", "fortnight"]}},
                }
            }
        )
        with pytest.raises(ParseError, match="fortnight"):
            convert_table(POSTGRES, model, [])

    def test_sub_day_interval_rejected_for_dates(self) -> None:
        model = make_model(
            columns={
                "order_date": {
                    "data_type": "date",
                    "meta": {"dimension": {"time_intervals": ["HOUR"]}},
                }
            }
        )
        with pytest.raises(ParseError, match="HOUR"):
            convert_table(POSTGRES, model, [])

    def test_non_date_columns_never_expand(self) -> None:
        model = make_model(
            columns={
                "status": {
                    "data_type": "string",
                    "meta": {"dimension": {"time_intervals": ["DAY"]}},
                }
            }
        )
        table = convert_table(POSTGRES, model, [])
        assert list(table.dimensions) == ["status"]

    def test_column_metrics(self) -> None:
        model = make_model(
            columns={
                "amount": {
                    "data_type": "number",
                    "meta": {
                        "metrics": {
                            "total_amount": {"type": "sum"},
                            "amount_doubled": {
                                "type": "number",
                                "sql": "${total_amount} * 2",
                            },
                        }
                    },
                }
            }
        )
        table = convert_table(POSTGRES, model, [])

        total = table.metrics["total_amount"]
        assert total.type == MetricType.SUM
        assert total.sql == "${TABLE}.amount"
        assert total.label == "Total amount"
        assert total.description == "Sum of Amount on the table Orders"
        assert table.metrics["amount_doubled"].sql == "${total_amount} * 2"

    def test_column_metric_wins_over_dbt_metric(self) -> None:
        model = make_model(
            columns={
                "amount": {
                    "data_type": "number",
                    "meta": {
                        "metrics": {
                            "total_revenue": {"type": "sum", "label": "Column revenue"}
                        }
                    },
                }
            }
        )
        dbt_metrics = [
            make_metric("total_revenue", expression="amount * 100", refs=[["orders"]]),
            make_metric("order_total", expression="amount", refs=[["orders"]]),
        ]
        table = convert_table(POSTGRES, model, dbt_metrics)

        assert set(table.metrics) == {"total_revenue", "order_total"}
        assert table.metrics["total_revenue"].label == "Column revenue"
        assert table.metrics["total_revenue"].sql == "${TABLE}.amount"

    def test_metric_dimension_collision(self) -> None:
        model = make_model(columns={"total_revenue": {"data_type": "number"}})
        with pytest.raises(ParseError) as exc_info:
            convert_table(POSTGRES, model, [make_metric("total_revenue")])
        assert str(exc_info.value) == (
            "Found a metric and a dimension with the same name: total_revenue"
        )

    def test_multiple_collisions(self) -> None:
        model = make_model(
            columns={
                "revenue": {"data_type": "number"},
                "created_at": {"data_type": "timestamp"},
            }
        )
        with pytest.raises(ParseError) as exc_info:
            convert_table(
                POSTGRES,
                model,
                [make_metric("revenue"), make_metric("created_at_day")],
            )
        assert str(exc_info.value) == (
            "Found multiple metrics and a dimensions with the same name: "
            "revenue,created_at_day"
        )

    def test_uncompiled_model(self) -> None:
        model = make_model(compiled=False)
        with pytest.raises(NonCompiledModelError):
            convert_table(POSTGRES, model, [])

    def test_missing_relation_name(self) -> None:
        model = make_model(relation_name=None)
        with pytest.raises(ValueError, match="Model has no table relation"):
            convert_table(POSTGRES, model, [])

    def test_label_from_config_meta_first(self) -> None:
        model = DbtModelNode.model_validate(
            {
                "unique_id": "model.shop.orders",
                "name": "orders",
                "database": "analytics",
                "schema": "public",
                "relation_name": "orders",
                "compiled": True,
                "config": {"meta": {"label": "From config"}},
                "meta": {"label": "From meta"},
                "description": "All orders",
            }
        )
        table = convert_table(POSTGRES, model, [])
        assert table.label == "From config"
        assert table.description == "All orders"


class TestModelCanUseMetric:
    """Tests for model_can_use_metric."""

    @pytest.fixture
    def metrics(self) -> list[DbtMetric]:
        return [
            make_metric("total_revenue", refs=[["orders"]]),
            make_metric("total_cost", refs=[["orders"]]),
            make_metric("customer_count", refs=[["customers"]]),
            make_metric(
                "net",
                calculation_method="expression",
                expression="total_revenue - total_cost",
                metrics=[["total_revenue"], ["total_cost"]],
            ),
            make_metric(
                "net_per_customer",
                calculation_method="expression",
                expression="net / customer_count",
                metrics=[["net"], ["customer_count"]],
            ),
        ]

    def test_first_ref_model(self, metrics: list[DbtMetric]) -> None:
        assert model_can_use_metric("total_revenue", "orders", metrics)

    def test_other_model(self, metrics: list[DbtMetric]) -> None:
        assert not model_can_use_metric("total_revenue", "customers", metrics)

    def test_expression_through_references(self, metrics: list[DbtMetric]) -> None:
        assert model_can_use_metric("net", "orders", metrics)
        assert not model_can_use_metric("net", "customers", metrics)

    def test_expression_mixing_models(self, metrics: list[DbtMetric]) -> None:
        assert not model_can_use_metric("net_per_customer", "orders", metrics)
        assert not model_can_use_metric("net_per_customer", "customers", metrics)

    def test_unknown_metric(self, metrics: list[DbtMetric]) -> None:
        assert not model_can_use_metric("nope", "orders", metrics)

    def test_cyclic_expressions_are_ineligible(self) -> None:
        metrics = [
            make_metric(
                "a", calculation_method="expression", expression="b + 1", metrics=[["b"]]
            ),
            make_metric(
                "b", calculation_method="expression", expression="a + 1", metrics=[["a"]]
            ),
        ]
        assert not model_can_use_metric("a", "orders", metrics)
        assert not model_can_use_metric("b", "orders", metrics)

    def test_shared_reference_is_not_a_cycle(self) -> None:
        metrics = [
            make_metric("base", refs=[["orders"]]),
            make_metric(
                "double",
                calculation_method="expression",
                expression="base + base",
                metrics=[["base"], ["base"]],
            ),
        ]
        assert model_can_use_metric("double", "orders", metrics)

    def test_cycle_warning_follows_reference_order(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        metrics = [
            make_metric(
                "net", calculation_method="expression", expression="z + 1", metrics=[["z"]]
            ),
            make_metric(
                "z", calculation_method="expression", expression="a + 1", metrics=[["a"]]
            ),
            make_metric(
                "a", calculation_method="expression", expression="z + 1", metrics=[["z"]]
            ),
        ]
        with caplog.at_level(logging.WARNING, logger=TRANSLATOR_LOGGER):
            assert not model_can_use_metric("net", "orders", metrics)

        assert [r.getMessage() for r in caplog.records] == [
            'Metric "z" references itself through z -> a -> z'
        ]

    def test_cycle_warned_once_across_models(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        metrics = [
            make_metric(
                "a", calculation_method="expression", expression="b + 1", metrics=[["b"]]
            ),
            make_metric(
                "b", calculation_method="expression", expression="a + 1", metrics=[["a"]]
            ),
        ]
        models = [make_model("orders"), make_model("customers")]
        with caplog.at_level(logging.WARNING, logger=TRANSLATOR_LOGGER):
            convert_explores(models, POSTGRES, metrics)

        cycle_warnings = [
            record.getMessage()
            for record in caplog.records
            if "references itself" in record.getMessage()
        ]
        assert cycle_warnings == ['Metric "a" references itself through a -> b -> a']


class TestConvertExplores:
    """Tests for convert_explores."""

    def test_uncompiled_model_becomes_error(self) -> None:
        models = [
            make_model("orders", columns={"amount": {"data_type": "number"}}),
            make_model("drafts", compiled=False, tags=["wip"]),
        ]
        result = convert_explores(models, POSTGRES, [])

        assert len(result) == 2
        explore, error = result
        assert isinstance(explore, Explore)
        assert explore.name == "orders"
        assert isinstance(error, ExploreError)
        assert error.name == "drafts"
        assert error.label == "Drafts"
        assert error.tags == ["wip"]
        assert error.errors[0].type == "NonCompiledModelError"
        assert error.errors[0].message == "Model has not been compiled by dbt"

    def test_generic_error_recorded(self) -> None:
        models = [make_model("orders", relation_name=None)]
        (error,) = convert_explores(models, POSTGRES, [])

        assert isinstance(error, ExploreError)
        assert error.errors[0].type == "ValueError"
        assert error.errors[0].message == "Model has no table relation"

    def test_metrics_assigned_to_their_models(self) -> None:
        models = [
            make_model("orders", columns={"amount": {"data_type": "number"}}),
            make_model("customers", columns={"customer_id": {"data_type": "number"}}),
        ]
        metrics = [
            make_metric("total_revenue", expression="amount", refs=[["orders"]]),
            make_metric(
                "customer_count",
                calculation_method="count_distinct",
                expression="customer_id",
                refs=[["customers"]],
            ),
        ]
        orders, customers = convert_explores(models, POSTGRES, metrics)

        assert isinstance(orders, Explore)
        assert isinstance(customers, Explore)
        assert set(orders.tables["orders"].metrics) == {"total_revenue"}
        assert set(customers.tables["customers"].metrics) == {"customer_count"}

    def test_bad_metric_only_breaks_its_model(self) -> None:
        models = [
            make_model("orders", columns={"amount": {"data_type": "number"}}),
            make_model("customers"),
        ]
        metrics = [make_metric("broken", calculation_method="sumx", refs=[["orders"]])]
        customers, orders = convert_explores(models, POSTGRES, metrics)

        assert isinstance(customers, Explore)
        assert customers.name == "customers"
        assert isinstance(orders, ExploreError)
        assert orders.errors[0].type == "ParseError"

    def test_error_ordering(self) -> None:
        models = [
            make_model("drafts", compiled=False),
            make_model(
                "orders",
                columns={"amount": {"data_type": "number"}},
                meta={"joins": [{"join": "missing", "sql_on": "1 = 1"}]},
            ),
            make_model("customers"),
        ]
        result = convert_explores(models, POSTGRES, [])

        assert [type(r) for r in result] == [Explore, ExploreError, ExploreError]
        assert [r.name for r in result] == ["customers", "drafts", "orders"]
        assert result[2].errors[0].type == "CompileError"

    def test_lineage_attached(self) -> None:
        models = [
            make_model("stg_orders"),
            make_model("orders", depends_on=["stg_orders"]),
        ]
        result = convert_explores(models, POSTGRES, [])
        orders = next(r for r in result if r.name == "orders")

        assert isinstance(orders, Explore)
        assert orders.tables["orders"].lineage_graph == {
            "stg_orders": [],
            "orders": [LineageNodeDependency(type="model", name="stg_orders")],
        }

    def test_joins_compiled(self) -> None:
        models = [
            make_model(
                "orders",
                columns={"customer_id": {"data_type": "number"}},
                meta={
                    "label": "Orders",
                    "joins": [
                        {
                            "join": "customers",
                            "sql_on": "${orders.customer_id} = ${customers.customer_id}",
                        }
                    ],
                },
            ),
            make_model("customers", columns={"customer_id": {"data_type": "number"}}),
        ]
        orders = convert_explores(models, POSTGRES, [])[0]

        assert isinstance(orders, Explore)
        assert set(orders.tables) == {"orders", "customers"}
        assert orders.joined_tables[0].compiled_sql_on == (
            '("orders".customer_id) = ("customers".customer_id)'
        )
