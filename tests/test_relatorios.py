from decimal import Decimal

import pytest

from atelie.domain.errors import ValidationFailed
from atelie.infra.db import connect
from atelie.usecases import relatorios
from atelie.usecases.materiais import atualizar_material, criar_material
from atelie.usecases.produtos import criar_produto
from atelie.usecases.relatorios import (
    analise_rentabilidade,
    evolucao_vendas_mensal,
    materiais_mais_usados,
    previsao_estoque,
    ranking_clientes,
    ranking_produtos,
    relatorio_vendas_periodo,
    resumo_geral,
    validar_periodo,
)
from atelie.usecases.vendas import cancelar_venda, criar_venda, finalizar_venda


def D(x):
    return Decimal(x)


@pytest.fixture
def cenario(db_path, clock):
    """Dois produtos e quatro vendas finalizadas (mais um rascunho e uma cancelada)."""
    tecido = criar_material({"nome": "Tecido", "custo_unitario": "10.00", "estoque_atual": "0.3"}, db_path=db_path)
    linha = criar_material({
        "nome": "Linha", "custo_unitario": "2.00", "unidade": "metro", "estoque_atual": "100",
        "estoque_minimo": "10", "conversoes": {"carretel": "50"},
    }, db_path=db_path)
    botao = criar_material({"nome": "Botão", "custo_unitario": "0.25"}, db_path=db_path)
    necessaire = criar_produto({
        "nome": "Necessaire",
        "insumos": [{"insumo_id": tecido["id"], "quantidade": "1"}],
        "custos_adicionais": {"tag": "0.30", "caixaSacola": "0.66"},
    }, db_path=db_path)
    chaveiro = criar_produto({
        "nome": "Chaveiro",
        "insumos": [{"insumo_id": linha["id"], "quantidade": "2", "unidade": "carretel"}],
    }, db_path=db_path)

    def vender(produto, qtd, data, cliente, status="finalizada"):
        v = criar_venda([{"produto_id": produto["id"], "quantidade": qtd}], cliente=cliente, data=data,
                        db_path=db_path, clock=clock)
        if status == "finalizada":
            finalizar_venda(v["id"], db_path=db_path, clock=clock)
        elif status == "cancelada":
            cancelar_venda(v["id"], db_path=db_path, clock=clock)
        return v

    vender(necessaire, 1, "2025-03-15", "Ana")
    vender(chaveiro, 2, "2025-03-02", "ana")
    vender(necessaire, 1, "2025-01-20", "Bia")
    vender(necessaire, 1, "2024-12-10", "Bia")
    vender(necessaire, 1, "2025-03-14", "Caio", status="rascunho")
    vender(chaveiro, 5, "2025-03-10", "Caio", status="cancelada")
    return {"tecido": tecido, "linha": linha, "botao": botao, "necessaire": necessaire, "chaveiro": chaveiro}


def test_validar_periodo():
    assert validar_periodo("2025-01-01", None) == ("2025-01-01", None)
    assert validar_periodo(None, None) == (None, None)
    with pytest.raises(ValidationFailed):
        validar_periodo("2025-02-01", "2025-01-01")
    with pytest.raises(ValidationFailed):
        validar_periodo("01/02/2025", None)


def test_resumo_geral_banco_vazio(db_path, clock):
    r = resumo_geral(db_path=db_path, clock=clock)
    assert r["contadores"]["vendas"] == 0
    assert r["financeiro"]["margem_mes"] == D("0.00")
    assert r["financeiro"]["ticket_medio_mes"] == D("0.00")
    assert r["produtos_mais_lucrativos"] == []
    assert r["gerado_em"] == "2025-03-15T10:30:00"


def test_resumo_geral(db_path, clock, cenario):
    r = resumo_geral(db_path=db_path, clock=clock)
    assert r["contadores"] == {
        "insumos": 3, "produtos": 2, "vendas": 4,
        "vendas_hoje": 1, "vendas_mes": 2, "vendas_ano": 3,
    }
    assert r["estoque"]["valor_total_insumos"] == D("203.00")
    assert r["estoque"]["valor_estoque_produtos"] == D("17.94")
    assert r["estoque"]["faturamento_potencial"] == D("25.63")
    assert r["estoque"]["insumos_estoque_baixo"] == 2
    assert {a["nome"] for a in r["estoque"]["alertas_estoque"]} == {"Tecido", "Botão"}

    f = r["financeiro"]
    assert f["faturamento_mes"] == D("30.17")
    assert f["lucro_mes"] == D("8.70")
    assert f["faturamento_ano"] == D("50.76")
    assert f["lucro_ano"] == D("14.88")
    assert f["margem_mes"] == D("40.52")
    assert f["ticket_medio_mes"] == D("15.09")
    assert r["produtos_mais_lucrativos"][0]["nome"] == "Necessaire"


def test_evolucao_mensal_inclui_mes_atual(db_path, clock, cenario):
    meses = evolucao_vendas_mensal(db_path=db_path, clock=clock)
    assert len(meses) == 12
    assert meses[0]["mes"] == "2024-04"
    assert meses[-1]["mes"] == "2025-03"
    por_mes = {m["mes"]: m for m in meses}
    assert por_mes["2025-03"]["numero_vendas"] == 2
    assert por_mes["2025-03"]["quantidade"] == 3
    assert por_mes["2025-03"]["faturamento"] == D("30.17")
    assert por_mes["2025-02"]["numero_vendas"] == 0
    assert por_mes["2025-02"]["ticket_medio"] == D("0.00")
    assert por_mes["2024-12"]["faturamento"] == D("20.59")


def test_materiais_mais_usados(db_path, cenario):
    usados = materiais_mais_usados(db_path=db_path)
    assert [u["nome"] for u in usados] == ["Tecido", "Linha"]
    assert usados[1]["quantidade_total_usada"] == D("0.04")
    assert usados[1]["valor_total_utilizado"] == D("0.08")
    assert usados[0]["produtos_que_utilizam"] == 1


def test_materiais_mais_usados_ignora_conversao_perdida(db_path, cenario):
    atualizar_material(cenario["linha"]["id"], {"conversoes": {}}, db_path=db_path)
    usados = materiais_mais_usados(db_path=db_path)
    assert [u["nome"] for u in usados] == ["Tecido"]


def test_rentabilidade(db_path, cenario):
    r = analise_rentabilidade(db_path=db_path)
    assert [p["nome"] for p in r["produtos"]] == ["Necessaire", "Chaveiro"]
    assert r["produtos"][1]["margem_real"] == D("29.96")
    e = r["estatisticas"]
    assert e["produto_mais_lucrativo"]["nome"] == "Necessaire"
    assert e["produto_menor_margem"]["nome"] == "Chaveiro"
    assert e["margem_media"] == D("29.99")
    assert e["lucro_medio_por_unidade"] == D("3.85")


def test_rentabilidade_sem_produtos(db_path):
    e = analise_rentabilidade(db_path=db_path)["estatisticas"]
    assert e["produto_mais_lucrativo"] is None
    assert e["margem_media"] == D("0.00")


def test_previsao_estoque(db_path, clock, cenario):
    res = previsao_estoque(dias_analise=20, db_path=db_path, clock=clock)
    assert res["parametros"] == {"dias_analise": 20, "total_vendas_periodo": 2}
    nomes = [p["nome"] for p in res["previsoes"]]
    assert nomes == ["Tecido", "Linha", "Botão"]
    tecido, linha, botao = res["previsoes"]
    assert tecido["consumo_total"] == D("1.00")
    assert tecido["consumo_diario"] == D("0.05")
    assert tecido["dias_para_esgotar"] == 6
    assert tecido["situacao"] == "critico"
    assert linha["dias_para_esgotar"] == 25000
    assert linha["situacao"] == "ok"
    assert botao["dias_para_esgotar"] is None
    assert botao["situacao"] == "sem_consumo"
    assert res["resumo"] == {"critico": 1, "alerta": 0, "atencao": 0, "ok": 1, "sem_consumo": 1}


def test_previsao_janela_invalida(db_path, clock):
    with pytest.raises(ValidationFailed):
        previsao_estoque(dias_analise=0, db_path=db_path, clock=clock)


def test_vendas_por_mes(db_path, cenario):
    res = relatorio_vendas_periodo(db_path=db_path)
    assert [p["periodo"] for p in res["periodos"]] == ["2024-12", "2025-01", "2025-03"]
    assert res["periodos"][-1]["total_vendas"] == 2
    assert res["periodos"][-1]["quantidade_itens"] == 3
    assert res["stats"]["total_vendas"] == 4
    assert res["stats"]["faturamento_total"] == D("71.35")


def test_vendas_por_dia_e_semana(db_path, cenario):
    dias = relatorio_vendas_periodo("2025-03-01", "2025-03-31", "dia", db_path=db_path)
    assert [p["periodo"] for p in dias["periodos"]] == ["2025-03-02", "2025-03-15"]
    semanas = relatorio_vendas_periodo("2025-03-01", "2025-03-31", "semana", db_path=db_path)
    # semanas começam no domingo
    assert [p["periodo"] for p in semanas["periodos"]] == ["2025-03-02", "2025-03-09"]
    with pytest.raises(ValidationFailed):
        relatorio_vendas_periodo(agrupar_por="ano", db_path=db_path)


def test_ranking_produtos(db_path, cenario):
    res = ranking_produtos(db_path=db_path)
    assert res["total"] == 2
    primeiro, segundo = res["ranking"]
    assert primeiro["produto_nome"] == "Necessaire"
    assert primeiro["total_vendas"] == 3
    assert primeiro["faturamento"] == D("61.77")
    assert segundo["quantidade_vendida"] == 2
    assert segundo["preco_medio"] == D("5.04")
    assert len(ranking_produtos(limite=1, db_path=db_path)["ranking"]) == 1


def test_ranking_clientes_agrupa_sem_caixa(db_path, cenario):
    res = ranking_clientes(db_path=db_path)
    assert [c["cliente"] for c in res["ranking"]] == ["Bia", "Ana"]
    ana = res["ranking"][1]
    assert ana["total_compras"] == 2
    assert ana["valor_gasto"] == D("30.17")
    assert ana["ultima_compra"] == "2025-03-15"
    assert ana["ticket_medio"] == D("15.09")


@pytest.fixture
def avisos(monkeypatch):
    eventos = []
    monkeypatch.setattr(relatorios, "log_system_event",
                        lambda event, details=None, level="info": eventos.append((event, level)))
    return eventos


def test_materiais_mais_usados_ignora_produto_corrompido(db_path, cenario, corromper, avisos):
    corromper("produto", "insumos", cenario["chaveiro"]["id"])
    usados = materiais_mais_usados(db_path=db_path)
    assert [u["nome"] for u in usados] == ["Tecido"]
    assert ("produto_json_corrompido", "warning") in avisos


def test_previsao_ignora_snapshot_corrompido(db_path, clock, cenario, corromper, avisos):
    with connect(db_path) as c:
        ids = [r[0] for r in c.execute(
            "SELECT id FROM venda_item WHERE produto_id = ?", (cenario["chaveiro"]["id"],))]
    for item_id in ids:
        corromper("venda_item", "insumos_snapshot", item_id)

    res = previsao_estoque(dias_analise=20, db_path=db_path, clock=clock)
    por_nome = {p["nome"]: p for p in res["previsoes"]}
    assert por_nome["Tecido"]["consumo_total"] == D("1.00")
    assert por_nome["Linha"]["situacao"] == "sem_consumo"
    assert ("snapshot_corrompido", "warning") in avisos
