import pytest

from atelie.adapters.tui import montar_tabela
from atelie.usecases.materiais import criar_material
from atelie.usecases.produtos import criar_produto
from atelie.usecases.vendas import criar_venda, finalizar_venda


@pytest.fixture
def cadastro(db_path):
    tecido = criar_material({"nome": "Tecido", "custo_unitario": "1234.50", "estoque_atual": "0"}, db_path=db_path)
    criar_produto({"nome": "Necessaire", "insumos": [{"insumo_id": tecido["id"], "quantidade": "1"}]},
                  db_path=db_path)


def test_insumos(db_path, cadastro):
    titulo, colunas, linhas = montar_tabela("ver-insumos", db_path)
    assert titulo == "Insumos"
    assert colunas[1] == "nome"
    assert linhas[0][1] == "Tecido"
    assert linhas[0][colunas.index("custo_unitario")] == "1.234,50"


def test_estoque_baixo_e_produtos(db_path, cadastro):
    _, _, linhas = montar_tabela("ver-estoque-baixo", db_path)
    assert len(linhas) == 1
    _, colunas, linhas = montar_tabela("ver-produtos", db_path)
    assert linhas[0][colunas.index("nome")] == "Necessaire"


@pytest.mark.parametrize("acao", ["ver-vendas", "rel-mensal", "rel-materiais", "rel-rentabilidade",
                                  "rel-ranking-produtos", "rel-ranking-clientes"])
def test_relatorios_montam(db_path, cadastro, acao):
    titulo, colunas, linhas = montar_tabela(acao, db_path)
    assert titulo
    assert all(len(linha) == len(colunas) for linha in linhas)


def test_parametros(db_path, cadastro):
    titulo, _, _ = montar_tabela("rel-previsao", db_path, {"dias": "15"})
    assert titulo == "Previsão de Estoque (15 dias)"
    titulo, _, _ = montar_tabela("rel-periodo", db_path, {"agrupar": "dia", "de": "", "ate": ""})
    assert titulo == "Vendas por dia"


def test_acao_desconhecida(db_path):
    with pytest.raises(ValueError):
        montar_tabela("nada", db_path)


def test_estoque_vem_da_view(db_path, cadastro):
    criar_material({"nome": "Argola", "custo_unitario": "3.10", "estoque_atual": "2", "estoque_minimo": "1"},
                   db_path=db_path)
    titulo, colunas, linhas = montar_tabela("ver-estoque", db_path)
    assert titulo == "Estoque de Insumos"
    por_nome = {linha[colunas.index("nome")]: linha for linha in linhas}
    assert por_nome["Argola"][colunas.index("valor_estoque")] == "6,20"
    assert por_nome["Argola"][colunas.index("estoque_atual")] == "2,00"
    _, colunas, baixos = montar_tabela("ver-estoque-baixo", db_path)
    assert [linha[colunas.index("nome")] for linha in baixos] == ["Tecido"]


def test_vendas_finalizadas_vem_da_view(db_path, cadastro, clock):
    v = criar_venda([{"produto_id": 1, "quantidade": 2}], cliente="Ana", data="2025-03-10",
                    db_path=db_path, clock=clock)
    finalizar_venda(v["id"], db_path=db_path, clock=clock)
    criar_venda([{"produto_id": 1}], data="2025-03-11", db_path=db_path, clock=clock)

    titulo, colunas, linhas = montar_tabela("ver-vendas-finalizadas", db_path)
    assert titulo == "Vendas Finalizadas"
    assert len(linhas) == 1
    assert linhas[0][colunas.index("codigo")] == v["codigo"]
    assert linhas[0][colunas.index("ano_mes")] == "2025-03"
    assert linhas[0][colunas.index("cliente")] == "Ana"
