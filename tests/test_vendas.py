from datetime import datetime
from decimal import Decimal

import pytest

from atelie.domain.errors import InvalidStateTransition, NotFound, ValidationFailed
from atelie.domain.models import ItemVendaInput
from atelie.infra.clock import FixedClock
from atelie.usecases.materiais import atualizar_material, buscar_material, criar_material
from atelie.usecases.produtos import criar_produto
from atelie.usecases.vendas import (
    atualizar_venda,
    buscar_venda,
    cancelar_venda,
    criar_venda,
    excluir_venda,
    finalizar_venda,
    listar_vendas,
    simular_venda,
)


@pytest.fixture
def produto(db_path):
    tecido = criar_material({"nome": "Tecido", "custo_unitario": "10.00", "estoque_atual": "8"}, db_path=db_path)
    return criar_produto({
        "nome": "Necessaire",
        "insumos": [{"insumo_id": tecido["id"], "quantidade": "1"}],
        "custos_adicionais": {"tag": "0.30", "caixaSacola": "0.66"},
    }, db_path=db_path)


def test_simular_venda_nao_grava(db_path, produto):
    res = simular_venda([{"produto_id": produto["id"], "quantidade": 2}], db_path=db_path)
    assert res["totais"]["subtotal"] == Decimal("41.18")
    assert res["totais"]["desconto_percentual"] == Decimal("5")
    assert res["totais"]["desconto_valor"] == Decimal("2.06")
    assert res["totais"]["total"] == Decimal("39.12")
    assert "insumos_snapshot" not in res["itens"][0]
    assert listar_vendas(db_path=db_path)["stats"]["total_vendas"] == 0


def test_criar_venda_tres_linhas(db_path, produto, clock):
    itens = [ItemVendaInput(produto_id=produto["id"]) for _ in range(3)]
    v = criar_venda(itens, cliente=" Ana ", db_path=db_path, clock=clock)
    assert v["status"] == "rascunho"
    assert v["data"] == "2025-03-15"
    assert v["codigo"].startswith("V20250315103000")
    assert len(v["codigo"]) == 18
    assert v["cliente"] == "Ana"
    assert v["subtotal"] == Decimal("61.77")
    assert v["quantidade_total"] == 3
    assert v["desconto_valor"] == Decimal("6.18")
    assert v["total"] == Decimal("55.59")
    assert v["custo_total"] == Decimal("43.23")
    assert v["lucro_total"] == Decimal("12.36")
    assert len(v["itens"]) == 3
    snap = v["itens"][0]["insumos_snapshot"]
    assert snap[0]["nome"] == "Tecido"
    assert snap[0]["quantidade_base"] == "1"


def test_venda_nao_movimenta_estoque(db_path, produto, clock):
    criar_venda([{"produto_id": produto["id"], "quantidade": 5}], db_path=db_path, clock=clock)
    assert buscar_material(produto["insumos"][0]["insumo_id"], db_path=db_path)["estoque_atual"] == Decimal("8")


def test_produto_inexistente_nao_grava_nada(db_path, produto, clock):
    with pytest.raises(NotFound):
        criar_venda([{"produto_id": produto["id"]}, {"produto_id": 999}], db_path=db_path, clock=clock)
    assert listar_vendas(db_path=db_path)["vendas"] == []


@pytest.mark.parametrize(
    "itens",
    [
        [],
        [{"produto_id": 1, "quantidade": 0}],
        [{"produto_id": 1, "quantidade": "1.5"}],
        [{"produto_id": "x"}],
        [{"produto_id": 1, "margem_simulada": "1001"}],
    ],
)
def test_itens_invalidos(db_path, produto, itens):
    with pytest.raises(ValidationFailed):
        criar_venda(itens, db_path=db_path)


def test_data_invalida(db_path, produto):
    with pytest.raises(ValidationFailed):
        criar_venda([{"produto_id": produto["id"]}], data="15/03/2025", db_path=db_path)


def test_margem_simulada_e_brinde(db_path, produto, clock):
    v = criar_venda([
        {"produto_id": produto["id"], "quantidade": 1, "margem_simulada": "50"},
        {"produto_id": produto["id"], "quantidade": 1, "eh_brinde": True, "observacoes": "cliente fiel"},
    ], db_path=db_path, clock=clock)
    assert v["itens"][0]["preco_unitario_final"] == Decimal("28.82")
    assert v["itens"][1]["eh_brinde"] is True
    assert v["itens"][1]["observacoes"] == "cliente fiel"
    # o brinde conta para a faixa de desconto
    assert v["desconto_percentual"] == Decimal("5")


def test_ciclo_de_vida(db_path, produto, clock):
    v = criar_venda([{"produto_id": produto["id"]}], db_path=db_path, clock=clock)
    assert finalizar_venda(v["id"], db_path=db_path, clock=clock)["status"] == "finalizada"
    with pytest.raises(InvalidStateTransition):
        finalizar_venda(v["id"], db_path=db_path, clock=clock)
    cancelada = cancelar_venda(v["id"], "desistência", db_path=db_path, clock=clock)
    assert cancelada["status"] == "cancelada"
    assert cancelada["observacoes"] == "Cancelada: desistência"
    with pytest.raises(InvalidStateTransition):
        cancelar_venda(v["id"], db_path=db_path, clock=clock)
    with pytest.raises(InvalidStateTransition):
        finalizar_venda(v["id"], db_path=db_path, clock=clock)


def test_rascunho_pode_ser_cancelado(db_path, produto, clock):
    v = criar_venda([{"produto_id": produto["id"]}], observacoes="encomenda", db_path=db_path, clock=clock)
    c = cancelar_venda(v["id"], "erro", db_path=db_path, clock=clock)
    assert c["observacoes"] == "encomenda\nCancelada: erro"


def test_editar_rascunho_usa_custos_atuais(db_path, produto, clock):
    v = criar_venda([{"produto_id": produto["id"]}], db_path=db_path, clock=clock)
    atualizar_material(produto["insumos"][0]["insumo_id"], {"custo_unitario": "12.00"}, db_path=db_path)

    depois = FixedClock(datetime(2025, 3, 16, 9, 0, 0))
    e = atualizar_venda(v["id"], [{"produto_id": produto["id"], "quantidade": 2}], cliente="Bia",
                        db_path=db_path, clock=depois)
    assert e["quantidade_total"] == 2
    assert e["itens"][0]["custo_unitario"] == Decimal("16.41")
    assert e["itens"][0]["preco_unitario_final"] == Decimal("23.44")
    assert e["subtotal"] == Decimal("46.88")
    assert e["cliente"] == "Bia"
    assert e["codigo"] == v["codigo"]
    assert e["atualizado_em"] == "2025-03-16T09:00:00"


def test_editar_sem_itens_reaproveita_os_existentes(db_path, produto, clock):
    v = criar_venda([{"produto_id": produto["id"], "quantidade": 3}], db_path=db_path, clock=clock)
    e = atualizar_venda(v["id"], observacoes="entregar sábado", db_path=db_path, clock=clock)
    assert e["quantidade_total"] == 3
    assert e["observacoes"] == "entregar sábado"


def test_editar_venda_finalizada_falha(db_path, produto, clock):
    v = criar_venda([{"produto_id": produto["id"]}], db_path=db_path, clock=clock)
    finalizar_venda(v["id"], db_path=db_path, clock=clock)
    with pytest.raises(InvalidStateTransition):
        atualizar_venda(v["id"], [{"produto_id": produto["id"], "quantidade": 4}], db_path=db_path, clock=clock)
    assert buscar_venda(v["id"], db_path=db_path)["quantidade_total"] == 1


def test_editar_com_produto_inexistente_mantem_itens(db_path, produto, clock):
    v = criar_venda([{"produto_id": produto["id"], "quantidade": 2}], db_path=db_path, clock=clock)
    with pytest.raises(NotFound):
        atualizar_venda(v["id"], [{"produto_id": 999}], db_path=db_path, clock=clock)
    atual = buscar_venda(v["id"], db_path=db_path)
    assert len(atual["itens"]) == 1
    assert atual["quantidade_total"] == 2


def test_excluir_venda(db_path, produto, clock):
    v = criar_venda([{"produto_id": produto["id"]}], db_path=db_path, clock=clock)
    finalizar_venda(v["id"], db_path=db_path, clock=clock)
    excluir_venda(v["id"], db_path=db_path)
    with pytest.raises(NotFound):
        buscar_venda(v["id"], db_path=db_path)
    with pytest.raises(NotFound):
        excluir_venda(v["id"], db_path=db_path)


def test_listar_vendas_filtros_e_paginacao(db_path, produto, clock):
    for dia, cliente in (("2025-03-01", "Ana"), ("2025-03-10", "Bia"), ("2025-03-12", "Ana Paula")):
        v = criar_venda([{"produto_id": produto["id"]}], cliente=cliente, data=dia, db_path=db_path, clock=clock)
        finalizar_venda(v["id"], db_path=db_path, clock=clock)
    criar_venda([{"produto_id": produto["id"]}], data="2025-03-14", db_path=db_path, clock=clock)

    res = listar_vendas(db_path=db_path)
    assert [v["data"] for v in res["vendas"]] == ["2025-03-14", "2025-03-12", "2025-03-10", "2025-03-01"]
    assert res["stats"]["total_vendas"] == 4
    assert res["stats"]["faturamento_total"] == Decimal("82.36")
    assert res["stats"]["ticket_medio"] == Decimal("20.59")

    fin = listar_vendas(status="finalizada", data_inicio="2025-03-05", db_path=db_path)
    assert [v["cliente"] for v in fin["vendas"]] == ["Ana Paula", "Bia"]

    assert listar_vendas(cliente="ana", db_path=db_path)["stats"]["total_vendas"] == 2

    pag = listar_vendas(pagina=2, por_pagina=3, db_path=db_path)
    assert len(pag["vendas"]) == 1
    assert pag["paginacao"] == {"pagina": 2, "por_pagina": 3, "total": 4, "total_paginas": 2}

    with pytest.raises(ValidationFailed):
        listar_vendas(status="aberta", db_path=db_path)
    with pytest.raises(ValidationFailed):
        listar_vendas(pagina=0, db_path=db_path)


def test_editar_venda_cancelada_falha(db_path, produto, clock):
    v = criar_venda([{"produto_id": produto["id"], "quantidade": 2}], db_path=db_path, clock=clock)
    cancelar_venda(v["id"], db_path=db_path, clock=clock)
    with pytest.raises(InvalidStateTransition):
        atualizar_venda(v["id"], [{"produto_id": produto["id"], "quantidade": 5}], db_path=db_path, clock=clock)
    atual = buscar_venda(v["id"], db_path=db_path)
    assert atual["status"] == "cancelada"
    assert atual["quantidade_total"] == 2
    assert [i["quantidade"] for i in atual["itens"]] == [2]


def test_ficha_corrompida_bloqueia_edicao_e_criacao(db_path, produto, clock, corromper):
    v = criar_venda([{"produto_id": produto["id"]}], db_path=db_path, clock=clock)
    corromper("produto", "insumos", produto["id"])

    with pytest.raises(ValidationFailed):
        atualizar_venda(v["id"], db_path=db_path, clock=clock)
    atual = buscar_venda(v["id"], db_path=db_path)
    assert atual["custo_total"] == Decimal("14.41")
    assert atual["itens"][0]["insumos_snapshot"][0]["nome"] == "Tecido"

    with pytest.raises(ValidationFailed):
        criar_venda([{"produto_id": produto["id"]}], db_path=db_path, clock=clock)
    assert listar_vendas(db_path=db_path)["stats"]["total_vendas"] == 1
