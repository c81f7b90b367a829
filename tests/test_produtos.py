from decimal import Decimal

import pytest

from atelie.domain.errors import NotFound, UnresolvedUnitConversion, ValidationFailed
from atelie.domain.models import Produto, UsoInsumo
from atelie.infra.repositories import ProdutoRepo
from atelie.usecases.materiais import atualizar_material, criar_material
from atelie.usecases.produtos import (
    atualizar_produto,
    buscar_produto,
    calcular_custos,
    criar_produto,
    excluir_produto,
    listar_categorias_produtos,
    listar_produtos,
    recalcular_custos,
    simular_precos,
)


@pytest.fixture
def materiais(db_path):
    tecido = criar_material({"nome": "Tecido Tricoline", "custo_unitario": "10.00"}, db_path=db_path)
    linha = criar_material({
        "nome": "Linha de Algodão", "custo_unitario": "2.00", "unidade": "metro",
        "conversoes": {"carretel": "50"},
    }, db_path=db_path)
    return tecido, linha


def _necessaire(db_path, tecido, **extra):
    dados = {
        "nome": "Necessaire",
        "categoria": "Bolsas",
        "insumos": [{"insumo_id": tecido["id"], "quantidade": "1"}],
        "mao_de_obra_horas": "0.5",
        "mao_de_obra_custo_hora": "6.90",
        "margem_lucro": "30",
        "custos_adicionais": {"tag": "0.30", "caixaSacola": "0.66"},
    }
    dados.update(extra)
    return criar_produto(dados, db_path=db_path)


def test_criar_produto_calcula_custos_e_preco(db_path, materiais):
    tecido, _ = materiais
    p = _necessaire(db_path, tecido)
    assert p["custo_insumos"] == Decimal("10.00")
    assert p["custo_mao_de_obra"] == Decimal("3.45")
    assert p["custo_adicional"] == Decimal("0.96")
    assert p["custo_total"] == Decimal("14.41")
    assert p["preco_venda"] == Decimal("20.59")
    assert p["lucro_unidade"] == Decimal("6.18")
    assert p["margem_real"] == Decimal("30.01")
    # unidade omitida é gravada como a unidade base
    assert p["insumos"] == [{"insumo_id": tecido["id"], "quantidade": "1", "unidade": "unidade"}]


def test_criar_produto_com_padroes_e_conversao(db_path, materiais):
    _, linha = materiais
    p = criar_produto({
        "nome": "Chaveiro",
        "insumos": [UsoInsumo(insumo_id=linha["id"], quantidade=Decimal("2"), unidade="carretel")],
    }, db_path=db_path)
    assert p["custo_insumos"] == Decimal("0.08")
    assert p["mao_de_obra_horas"] == Decimal("0.5")
    assert p["mao_de_obra_custo_hora"] == Decimal("6.90")
    assert p["margem_lucro"] == Decimal("30")
    assert p["custo_total"] == Decimal("3.53")
    assert p["preco_venda"] == Decimal("5.04")


def test_criar_produto_a_partir_do_modelo(db_path, materiais):
    tecido, _ = materiais
    p = criar_produto(Produto(nome="Bolsa", margem_lucro=Decimal("0"),
                              insumos=[UsoInsumo(insumo_id=tecido["id"], quantidade=Decimal("2"))]),
                      db_path=db_path)
    assert p["categoria"] == "Geral"
    assert p["custo_total"] == p["preco_venda"]
    assert p["custos_adicionais"] == {}


def test_conversao_nao_resolvida_nao_grava(db_path, materiais):
    _, linha = materiais
    with pytest.raises(UnresolvedUnitConversion):
        criar_produto({"nome": "Pulseira", "insumos": [{"insumo_id": linha["id"], "quantidade": 1, "unidade": "novelo"}]},
                      db_path=db_path)
    assert listar_produtos(ativo=None, db_path=db_path)["produtos"] == []


@pytest.mark.parametrize(
    "extra",
    [
        {"insumos": [{"insumo_id": 999, "quantidade": "1"}]},
        {"insumos": [{"insumo_id": 1, "quantidade": "0"}]},
        {"insumos": ["1:2"]},
        {"margem_lucro": "1001"},
        {"mao_de_obra_horas": "-1"},
        {"custos_adicionais": {"frete": "2"}},
        {"nome": "X"},
    ],
)
def test_criar_produto_invalido(db_path, materiais, extra):
    tecido, _ = materiais
    with pytest.raises(ValidationFailed):
        _necessaire(db_path, tecido, **extra)


def test_nome_unico(db_path, materiais):
    tecido, _ = materiais
    _necessaire(db_path, tecido)
    with pytest.raises(ValidationFailed):
        _necessaire(db_path, tecido)


def test_atualizar_margem_recalcula_preco(db_path, materiais):
    tecido, _ = materiais
    p = _necessaire(db_path, tecido)
    novo = atualizar_produto(p["id"], {"margem_lucro": "50"}, db_path=db_path)
    assert novo["custo_total"] == Decimal("14.41")
    assert novo["preco_venda"] == Decimal("28.82")
    assert novo["custos_adicionais"] == {"tag": "0.30", "caixaSacola": "0.66"}


def test_atualizar_produto_inexistente(db_path):
    with pytest.raises(NotFound):
        atualizar_produto(5, {"margem_lucro": "50"}, db_path=db_path)


def test_recalcular_apos_mudanca_de_custo(db_path, materiais):
    tecido, _ = materiais
    p = _necessaire(db_path, tecido)
    assert recalcular_custos(p["id"], db_path=db_path)["alterado"] is False

    atualizar_material(tecido["id"], {"custo_unitario": "12.00"}, db_path=db_path)
    # o cache do produto só muda no recálculo
    assert buscar_produto(p["id"], db_path=db_path)["custo_total"] == Decimal("14.41")

    res = recalcular_custos(p["id"], db_path=db_path)
    assert res["alterado"] is True
    assert res["calculos"]["custo_total"] == Decimal("16.41")
    assert res["produto"]["preco_venda"] == Decimal("23.44")


def test_calcular_custos_sem_gravar(db_path, materiais):
    tecido, _ = materiais
    calc = calcular_custos({"insumos": [{"insumo_id": tecido["id"], "quantidade": "2"}], "margem_lucro": "0"},
                           db_path=db_path)
    assert calc["custo_insumos"] == Decimal("20.00")
    assert calc["custo_total"] == Decimal("23.45")
    assert calc["preco_venda"] == Decimal("23.45")
    assert listar_produtos(db_path=db_path)["stats"]["total"] == 0


def test_simular_precos(db_path, materiais):
    tecido, _ = materiais
    p = _necessaire(db_path, tecido)
    res = simular_precos(p["id"], db_path=db_path)
    assert [s["margem"] for s in res["simulacoes"]] == [Decimal(m) for m in (20, 30, 40, 50, 60)]
    assert res["preco_atual"] == Decimal("20.59")
    uma = simular_precos(p["id"], ["45"], db_path=db_path)["simulacoes"]
    assert uma[0]["preco_venda"] == Decimal("26.20")
    with pytest.raises(NotFound):
        simular_precos(999, db_path=db_path)


def test_buscar_produto_detalha_insumos(db_path, materiais):
    tecido, linha = materiais
    p = _necessaire(db_path, tecido, insumos=[
        {"insumo_id": tecido["id"], "quantidade": "1"},
        {"insumo_id": linha["id"], "quantidade": "0.5", "unidade": "carretel"},
    ])
    detalhes = buscar_produto(p["id"], db_path=db_path)["insumos_detalhados"]
    assert [d["nome"] for d in detalhes] == ["Tecido Tricoline", "Linha de Algodão"]
    assert detalhes[1]["custo"] == Decimal("0.02")


def test_listar_e_excluir(db_path, materiais):
    tecido, _ = materiais
    p = _necessaire(db_path, tecido)
    _necessaire(db_path, tecido, nome="Estojo", categoria="Estojos", margem_lucro="50")
    res = listar_produtos(db_path=db_path)
    assert [x["nome"] for x in res["produtos"]] == ["Estojo", "Necessaire"]
    assert res["stats"]["faturamento_potencial"] == Decimal("49.41")
    assert listar_categorias_produtos(db_path=db_path) == ["Bolsas", "Estojos"]

    excluir_produto(p["id"], db_path=db_path)
    with pytest.raises(NotFound):
        buscar_produto(p["id"], db_path=db_path)


def test_atualizar_com_ficha_corrompida_falha_sem_gravar(db_path, materiais, corromper):
    tecido, _ = materiais
    p = _necessaire(db_path, tecido)
    corromper("produto", "insumos", p["id"])
    with pytest.raises(ValidationFailed, match="insumos corrompido"):
        atualizar_produto(p["id"], {"descricao": "nova"}, db_path=db_path)
    atual = ProdutoRepo(db_path).get(p["id"])
    assert atual["insumos"] is None
    assert atual["descricao"] is None
    assert atual["custo_total"] == Decimal("14.41")


def test_atualizar_substituindo_ficha_corrompida(db_path, materiais, corromper):
    tecido, _ = materiais
    p = _necessaire(db_path, tecido)
    corromper("produto", "insumos", p["id"])
    novo = atualizar_produto(p["id"], {"insumos": [{"insumo_id": tecido["id"], "quantidade": "2"}]}, db_path=db_path)
    assert novo["insumos"] == [{"insumo_id": tecido["id"], "quantidade": "2", "unidade": "unidade"}]
    assert novo["custo_total"] == Decimal("24.41")


def test_recalcular_com_custos_adicionais_corrompidos(db_path, materiais, corromper):
    tecido, _ = materiais
    p = _necessaire(db_path, tecido)
    atualizar_material(tecido["id"], {"custo_unitario": "1.00"}, db_path=db_path)
    corromper("produto", "custos_adicionais", p["id"])
    with pytest.raises(ValidationFailed, match="custos_adicionais corrompido"):
        recalcular_custos(p["id"], db_path=db_path)
    assert ProdutoRepo(db_path).get(p["id"])["custo_total"] == Decimal("14.41")
