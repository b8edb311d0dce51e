"""Shared fixtures: a small closing checklist and two stores."""

import pytest

from conferkit.conference.types import Store
from conferkit.templates.types import (
    ChecklistTemplate,
    ExpectedInput,
    InputType,
    MustReturnNoRows,
    NumberEqualsExpected,
    NumberMatchesExpectedWithTolerance,
    Scope,
    TemplateItem,
    TemplateSection,
)


def build_template() -> ChecklistTemplate:
    """Two sections: a global financial section and a per-store stock section."""
    return ChecklistTemplate(
        name="Fechamento Mensal",
        description="Conferência de fechamento",
        expected_inputs=[
            ExpectedInput(key="saldo", label="Saldo bancário", type=InputType.CURRENCY, required=True),
            ExpectedInput(
                key="estoque",
                label="Itens em estoque",
                type=InputType.NUMBER,
                scope=Scope.PER_STORE,
                required=True,
            ),
            ExpectedInput(key="observacao", label="Observação", type=InputType.TEXT),
        ],
        sections=[
            TemplateSection(
                key="financeiro",
                title="Financeiro",
                order=1,
                items=[
                    TemplateItem(
                        key="saldo_banco",
                        title="Saldo em banco",
                        order=1,
                        query=(
                            "SELECT SUM(valor) AS total FROM lancamentos "
                            "WHERE data BETWEEN :data_inicio AND :data_fim"
                        ),
                        validation_rule=NumberEqualsExpected(),
                        expected_input_binding="saldo",
                    ),
                    TemplateItem(
                        key="sem_pendencias",
                        title="Sem pendências",
                        order=2,
                        query="SELECT id FROM pendencias",
                        validation_rule=MustReturnNoRows(),
                        auto_resolve=False,
                    ),
                ],
            ),
            TemplateSection(
                key="estoque",
                title="Estoque",
                order=2,
                items=[
                    TemplateItem(
                        key="estoque_loja",
                        title="Estoque por loja",
                        query="SELECT SUM(qtd) AS total FROM estoque WHERE loja = :store_id",
                        validation_rule=NumberMatchesExpectedWithTolerance(tolerance=0.05),
                        scope=Scope.PER_STORE,
                        expected_input_binding="estoque",
                    ),
                ],
            ),
        ],
    )


def build_stores() -> list[Store]:
    return [
        Store(id="s1", name="Loja Centro", store_id="101"),
        Store(id="s2", name="Loja Norte", store_id="202"),
    ]


@pytest.fixture
def template() -> ChecklistTemplate:
    return build_template()


@pytest.fixture
def stores() -> list[Store]:
    return build_stores()
