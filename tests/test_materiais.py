from decimal import Decimal

import pytest

from atelie.domain.errors import InsufficientStock, NotFound, TransactionAborted, ValidationFailed
from atelie.domain.models import Material
from atelie.infra.repositories import MaterialRepo
from atelie.usecases.materiais import (
    ajustar_estoque,
    atualizar_material,
    buscar_material,
    criar_material,
    excluir_material,
    listar_categorias_materiais,
    listar_materiais,
)


def _linha(db_path, **extra):
    dados = {
        "nome": "Linha de Algodão",
        "custo_unitario": "2.00",
        "unidade": "metro",
        "categoria": "Linhas",
        "estoque_atual": "100",
        "estoque_minimo": "10",
        "conversoes": {"carretel": "50"},
    }
    dados.update(extra)
    return criar_material(dados, db_path=db_path)


def test_criar_material_com_padroes(db_path, clock):
    m = criar_material({"nome": "Botão", "custo_unitario": "0,25"}, db_path=db_path, clock=clock)
    assert m["id"] > 0
    assert m["categoria"] == "Geral"
    assert m["unidade"] == "unidade"
    assert m["custo_unitario"] == Decimal("0.25")
    assert m["estoque_atual"] == Decimal("0")
    assert m["estoque_minimo"] == Decimal("1")
    assert m["estoque_baixo"] is True
    assert m["ativo"] is True
    assert m["criado_em"] == "2025-03-15T10:30:00"


def test_criar_material_guarda_conversoes(db_path):
    m = _linha(db_path)
    assert m["conversoes"] == {"carretel": "50"}
    assert m["valor_estoque"] == Decimal("200.00")


def test_criar_material_a_partir_do_modelo(db_path):
    m = criar_material(Material(nome="Botão", custo_unitario=Decimal("0.25"), variacao="b",
                                conversoes={"cartela": Decimal("12")}), db_path=db_path)
    assert m["variacao"] == "B"
    assert m["categoria"] == "Geral"
    assert m["estoque_minimo"] == Decimal("1")
    assert m["conversoes"] == {"cartela": "12"}


@pytest.mark.parametrize(
    "dados",
    [
        {"nome": "A", "custo_unitario": "1"},
        {"nome": "Fita", "custo_unitario": "-1"},
        {"nome": "Fita"},
        {"nome": "Fita", "custo_unitario": "1", "variacao": "ab"},
        {"nome": "Fita", "custo_unitario": "1", "conversoes": {"rolo": "0"}},
        {"nome": "Fita", "custo_unitario": "1", "cor": "azul"},
    ],
)
def test_criar_material_invalido(db_path, dados):
    with pytest.raises(ValidationFailed):
        criar_material(dados, db_path=db_path)
    assert listar_materiais(ativo=None, db_path=db_path)["stats"]["total"] == 0


def test_nome_e_variacao_unicos(db_path):
    criar_material({"nome": "Feltro", "custo_unitario": "3", "variacao": "a"}, db_path=db_path)
    outro = criar_material({"nome": "Feltro", "custo_unitario": "3", "variacao": "B"}, db_path=db_path)
    assert outro["variacao"] == "B"
    with pytest.raises(ValidationFailed):
        criar_material({"nome": "Feltro", "custo_unitario": "3", "variacao": "A"}, db_path=db_path)


def test_atualizar_material_parcial(db_path):
    m = _linha(db_path)
    novo = atualizar_material(m["id"], {"custo_unitario": "2.50", "imagem_url": ""}, db_path=db_path)
    assert novo["custo_unitario"] == Decimal("2.50")
    assert novo["nome"] == "Linha de Algodão"
    assert novo["conversoes"] == {"carretel": "50"}
    assert novo["imagem_url"] is None


def test_atualizar_material_inexistente(db_path):
    with pytest.raises(NotFound):
        atualizar_material(999, {"nome": "Nada"}, db_path=db_path)


def test_excluir_material(db_path):
    m = _linha(db_path)
    excluir_material(m["id"], db_path=db_path)
    with pytest.raises(NotFound):
        buscar_material(m["id"], db_path=db_path)
    with pytest.raises(NotFound):
        excluir_material(m["id"], db_path=db_path)


def test_listar_com_filtros_e_estatisticas(db_path):
    _linha(db_path)
    criar_material({"nome": "Zíper", "custo_unitario": "1.20", "categoria": "Aviamentos",
                    "estoque_atual": "1", "estoque_minimo": "5"}, db_path=db_path)
    criar_material({"nome": "Velcro", "custo_unitario": "0.80", "ativo": False}, db_path=db_path)

    res = listar_materiais(db_path=db_path)
    assert [m["nome"] for m in res["materiais"]] == ["Linha de Algodão", "Zíper"]
    assert res["stats"] == {"total": 2, "valor_total_estoque": Decimal("201.20"), "estoque_baixo": 1}

    baixo = listar_materiais(somente_estoque_baixo=True, db_path=db_path)
    assert [m["nome"] for m in baixo["materiais"]] == ["Zíper"]

    assert len(listar_materiais(ativo=None, db_path=db_path)["materiais"]) == 3
    assert [m["nome"] for m in listar_materiais(busca="zíp", db_path=db_path)["materiais"]] == ["Zíper"]
    assert listar_categorias_materiais(db_path=db_path) == ["Aviamentos", "Linhas"]


def test_saida_ate_zerar_e_saida_insuficiente(db_path):
    m = criar_material({"nome": "Fita Cetim", "custo_unitario": "1", "estoque_atual": "5",
                        "estoque_minimo": "2"}, db_path=db_path)
    res = ajustar_estoque(m["id"], "saida", 5, db_path=db_path)
    assert res["estoque_atual"] == Decimal("0")
    assert res["estoque_baixo"] is True
    assert res["movimento"] == "-5"

    with pytest.raises(InsufficientStock):
        ajustar_estoque(m["id"], "saida", 1, db_path=db_path)
    assert buscar_material(m["id"], db_path=db_path)["estoque_atual"] == Decimal("0")


def test_entrada_soma_ao_estoque(db_path):
    m = _linha(db_path)
    res = ajustar_estoque(m["id"], "entrada", "2,5", observacao="compra", db_path=db_path)
    assert res["estoque_anterior"] == Decimal("100")
    assert res["estoque_atual"] == Decimal("102.5")
    assert res["observacao"] == "compra"


@pytest.mark.parametrize("tipo,qtd", [("ajuste", 1), ("entrada", 0), ("saida", -2), ("entrada", "x")])
def test_ajuste_invalido(db_path, tipo, qtd):
    m = _linha(db_path)
    with pytest.raises(ValidationFailed):
        ajustar_estoque(m["id"], tipo, qtd, db_path=db_path)


def test_ajuste_de_insumo_inexistente(db_path):
    with pytest.raises(NotFound):
        ajustar_estoque(42, "entrada", 1, db_path=db_path)


def test_ajuste_concorrente_aborta(db_path, monkeypatch):
    m = _linha(db_path)
    monkeypatch.setattr(MaterialRepo, "compare_and_set_estoque", lambda self, *a, **k: False)
    with pytest.raises(TransactionAborted):
        ajustar_estoque(m["id"], "entrada", 1, db_path=db_path)
    assert buscar_material(m["id"], db_path=db_path)["estoque_atual"] == Decimal("100")


def test_compare_and_set_recusa_valor_desatualizado(db_path):
    m = _linha(db_path)
    repo = MaterialRepo(db_path)
    assert not repo.compare_and_set_estoque(m["id"], Decimal("99"), Decimal("1"), "2025-01-01T00:00:00")
    assert repo.compare_and_set_estoque(m["id"], Decimal("100"), Decimal("1"), "2025-01-01T00:00:00")
    assert repo.get(m["id"])["estoque_atual"] == Decimal("1")
