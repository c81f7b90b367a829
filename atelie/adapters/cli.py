# atelie/adapters/cli.py
"""
CLI do ateliê (Typer).

Comandos principais:
- migrate                  -> aplica migrações e cria views
- material ...             -> cadastro de insumos e movimentação de estoque
- produto ...              -> fichas técnicas, custos e simulação de preço
- venda ...                -> vendas (rascunho, finalização, cancelamento, exportação)
- rel ...                  -> relatórios e estatísticas
- backup ...               -> backup diário do banco e retenção
- tui                      -> interface terminal (Textual)

Todos os comandos aceitam --db. Listagens e relatórios aceitam --json.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from atelie.config import BACKUP_DIR, DB_PATH, DEFAULTS
from atelie.domain.errors import AtelieError
from atelie.adapters.parsers import parse_decimal, parse_item_venda, parse_pares, parse_uso_insumo
from atelie.infra.migrations import apply_migrations
from atelie.infra.views import create_views
from atelie.usecases import backup as uc_backup
from atelie.usecases import materiais as uc_materiais
from atelie.usecases import produtos as uc_produtos
from atelie.usecases import relatorios as uc_relatorios
from atelie.usecases import vendas as uc_vendas
from atelie.usecases.exportar import exportar_vendas_excel


app = typer.Typer(help="Ateliê: insumos, produtos e vendas")
console = Console()

DB_OPT = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")
JSON_OPT = typer.Option(False, "--json", help="Saída em JSON")


# -----------------------
# util
# -----------------------

def _print_json(obj) -> None:
    typer.echo(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _fmt(val: Any) -> str:
    """Formata valores para as tabelas (números no padrão brasileiro)."""
    if val is None:
        return ""
    if isinstance(val, bool):
        return "sim" if val else "não"
    if isinstance(val, Decimal):
        if val == val.quantize(Decimal("0.01")):
            return f"{val:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
        return str(val.normalize()).replace(".", ",")
    if isinstance(val, float):
        return f"{val:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    if isinstance(val, datetime):
        return val.strftime("%d/%m/%Y %H:%M")
    if isinstance(val, date):
        return val.strftime("%d/%m/%Y")
    if isinstance(val, dict):
        return ", ".join(f"{k}={_fmt(v)}" for k, v in val.items())
    if isinstance(val, list):
        return f"{len(val)} item(ns)"
    return str(val)


def _display_table(data: List[Dict[str, Any]], title: str = "Resultado", columns: Optional[List[str]] = None) -> None:
    """Exibe uma lista de registros numa tabela Rich."""
    if not data:
        console.print(Panel("Nenhum dado encontrado", title=title, border_style="yellow"))
        return
    columns = columns or list(data[0].keys())
    table = Table(title=title, box=box.ROUNDED)
    for column in columns:
        numerica = isinstance(data[0].get(column), (int, float, Decimal)) and not isinstance(data[0].get(column), bool)
        table.add_column(column, justify="right" if numerica else "left")
    for row in data:
        valores = []
        for col in columns:
            val = row.get(col)
            if col in ("situacao", "status") and isinstance(val, str):
                cor = {"critico": "bold red", "alert": "bold red", "alerta": "bold yellow",
                       "warning": "bold yellow", "ok": "bold green", "finalizada": "green",
                       "cancelada": "red"}.get(val)
                valores.append(f"[{cor}]{val}[/]" if cor else val)
            else:
                valores.append(_fmt(val))
        table.add_row(*valores)
    console.print(table)


def _display_record(data: Dict[str, Any], title: str) -> None:
    """Registro único como tabela Campo/Valor."""
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Campo")
    table.add_column("Valor")
    for chave, valor in data.items():
        table.add_row(chave, _fmt(valor))
    console.print(table)


@contextmanager
def _tratando_erros() -> Iterator[None]:
    """Erros de negócio e de parsing viram mensagem e código de saída 1."""
    try:
        yield
    except AtelieError as e:
        console.print(f"[bold red]Erro:[/] {escape(str(e))}")
        raise typer.Exit(code=1)
    except ValueError as e:
        console.print(f"[bold red]Entrada inválida:[/] {escape(str(e))}")
        raise typer.Exit(code=1)


def _dec(txt: Optional[str]) -> Optional[Decimal]:
    return None if txt is None else parse_decimal(txt)


def _sem_none(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


# -----------------------
# comandos de infra
# -----------------------

@app.command("migrate")
def cmd_migrate(db_path: str = DB_OPT):
    """Aplica migrações e recria as views auxiliares."""
    apply_migrations(db_path)
    create_views(db_path)
    typer.echo(f">> Migrações aplicadas e views criadas em: {db_path}")


@app.command("tui")
def cmd_tui(db_path: str = DB_OPT):
    """Inicia a interface terminal interativa (Textual)."""
    from atelie.adapters.tui import main_tui
    apply_migrations(db_path)
    main_tui(db_path)


# -----------------------
# insumos
# -----------------------

material_app = typer.Typer(help="Insumos (matéria-prima) e estoque")
app.add_typer(material_app, name="material")


@material_app.command("criar")
def material_criar(
    nome: str = typer.Argument(..., help="Nome do insumo"),
    custo: str = typer.Option(..., "--custo", help="Custo por unidade base"),
    categoria: Optional[str] = typer.Option(None, help="Categoria (padrão: Geral)"),
    unidade: Optional[str] = typer.Option(None, help="Unidade base (padrão: unidade)"),
    estoque: Optional[str] = typer.Option(None, help="Estoque inicial"),
    minimo: Optional[str] = typer.Option(None, help="Estoque mínimo"),
    variacao: Optional[str] = typer.Option(None, help="Letra da variação (A-Z)"),
    conv: Optional[List[str]] = typer.Option(None, "--conv", help="Conversão unidade=fator (1 base = fator unidades)"),
    fornecedor: Optional[str] = typer.Option(None),
    obs: Optional[str] = typer.Option(None, "--obs"),
    imagem: Optional[str] = typer.Option(None, "--imagem", help="Caminho/URL da imagem"),
    db_path: str = DB_OPT,
):
    """Cadastra um insumo."""
    with _tratando_erros():
        dados = _sem_none({
            "nome": nome, "custo_unitario": parse_decimal(custo), "categoria": categoria,
            "unidade": unidade, "estoque_atual": _dec(estoque), "estoque_minimo": _dec(minimo),
            "variacao": variacao, "conversoes": parse_pares(conv) if conv else None,
            "fornecedor": fornecedor, "observacoes": obs, "imagem_url": imagem,
        })
        m = uc_materiais.criar_material(dados, db_path=db_path)
    _display_record(m, title="Insumo Cadastrado")


@material_app.command("listar")
def material_listar(
    categoria: Optional[str] = typer.Option(None),
    busca: Optional[str] = typer.Option(None, help="Trecho do nome ou variação"),
    todos: bool = typer.Option(False, "--todos", help="Inclui inativos"),
    baixo: bool = typer.Option(False, "--baixo", help="Somente estoque baixo"),
    ordenar: str = typer.Option("nome", help="nome | categoria | custo_unitario | estoque_atual"),
    desc: bool = typer.Option(False, "--desc", help="Ordem decrescente"),
    as_json: bool = JSON_OPT,
    db_path: str = DB_OPT,
):
    """Lista insumos com filtros e totais."""
    with _tratando_erros():
        res = uc_materiais.listar_materiais(
            categoria=categoria, ativo=None if todos else True, busca=busca,
            somente_estoque_baixo=baixo, ordenar=ordenar, direcao="DESC" if desc else "ASC", db_path=db_path,
        )
    if as_json:
        _print_json(res)
        return
    _display_table(res["materiais"], title="Insumos", columns=[
        "id", "nome", "variacao", "categoria", "unidade", "custo_unitario",
        "estoque_atual", "estoque_minimo", "estoque_baixo", "valor_estoque",
    ])
    s = res["stats"]
    console.print(
        f"[dim]Total: {s['total']} | Valor em estoque: R$ {_fmt(s['valor_total_estoque'])} | "
        f"Estoque baixo: {s['estoque_baixo']}[/dim]"
    )


@material_app.command("mostrar")
def material_mostrar(material_id: int = typer.Argument(...), as_json: bool = JSON_OPT, db_path: str = DB_OPT):
    """Mostra um insumo."""
    with _tratando_erros():
        m = uc_materiais.buscar_material(material_id, db_path=db_path)
    if as_json:
        _print_json(m)
    else:
        _display_record(m, title=f"Insumo #{material_id}")


@material_app.command("editar")
def material_editar(
    material_id: int = typer.Argument(...),
    nome: Optional[str] = typer.Option(None),
    custo: Optional[str] = typer.Option(None, "--custo"),
    categoria: Optional[str] = typer.Option(None),
    unidade: Optional[str] = typer.Option(None),
    minimo: Optional[str] = typer.Option(None),
    variacao: Optional[str] = typer.Option(None),
    conv: Optional[List[str]] = typer.Option(None, "--conv", help="Substitui as conversões"),
    fornecedor: Optional[str] = typer.Option(None),
    obs: Optional[str] = typer.Option(None, "--obs"),
    imagem: Optional[str] = typer.Option(None, "--imagem", help='"" remove a imagem'),
    ativo: Optional[bool] = typer.Option(None, "--ativo/--inativo"),
    db_path: str = DB_OPT,
):
    """Edita só os campos informados (o estoque muda apenas por `material estoque`)."""
    with _tratando_erros():
        dados = _sem_none({
            "nome": nome, "custo_unitario": _dec(custo), "categoria": categoria, "unidade": unidade,
            "estoque_minimo": _dec(minimo), "variacao": variacao,
            "conversoes": parse_pares(conv) if conv else None,
            "fornecedor": fornecedor, "observacoes": obs, "imagem_url": imagem, "ativo": ativo,
        })
        m = uc_materiais.atualizar_material(material_id, dados, db_path=db_path)
    _display_record(m, title="Insumo Atualizado")


@material_app.command("excluir")
def material_excluir(
    material_id: int = typer.Argument(...),
    yes: bool = typer.Option(False, "--yes", "-y", help="Não pedir confirmação"),
    db_path: str = DB_OPT,
):
    """Exclui um insumo."""
    if not yes and not typer.confirm(f"Excluir o insumo {material_id}?"):
        raise typer.Exit(code=0)
    with _tratando_erros():
        uc_materiais.excluir_material(material_id, db_path=db_path)
    typer.echo(f">> Insumo {material_id} excluído.")


@material_app.command("estoque")
def material_estoque(
    material_id: int = typer.Argument(...),
    tipo: str = typer.Argument(..., help="entrada | saida"),
    quantidade: str = typer.Argument(..., help="Quantidade na unidade base"),
    obs: Optional[str] = typer.Option(None, "--obs", help="Observação do movimento"),
    db_path: str = DB_OPT,
):
    """Registra entrada ou saída de estoque."""
    with _tratando_erros():
        res = uc_materiais.ajustar_estoque(material_id, tipo, quantidade, observacao=obs, db_path=db_path)
    _display_record(res, title="Movimento de Estoque")
    if res["estoque_baixo"]:
        console.print("[bold yellow]Atenção: estoque no mínimo ou abaixo.[/]")


@material_app.command("categorias")
def material_categorias(db_path: str = DB_OPT):
    """Lista as categorias de insumos ativos."""
    for c in uc_materiais.listar_categorias_materiais(db_path=db_path):
        typer.echo(c)


# -----------------------
# produtos
# -----------------------

produto_app = typer.Typer(help="Produtos: ficha técnica, custos e preço")
app.add_typer(produto_app, name="produto")


def _dados_produto(insumo, horas, custo_hora, margem, extra) -> Dict[str, Any]:
    return _sem_none({
        "insumos": [parse_uso_insumo(i) for i in insumo] if insumo else None,
        "mao_de_obra_horas": _dec(horas),
        "mao_de_obra_custo_hora": _dec(custo_hora),
        "margem_lucro": _dec(margem),
        "custos_adicionais": parse_pares(extra) if extra else None,
    })


@produto_app.command("criar")
def produto_criar(
    nome: str = typer.Argument(...),
    insumo: Optional[List[str]] = typer.Option(None, "--insumo", "-i", help="insumo_id:quantidade[:unidade]"),
    horas: Optional[str] = typer.Option(None, help=f"Horas de mão de obra (padrão {DEFAULTS.mao_de_obra_horas})"),
    custo_hora: Optional[str] = typer.Option(None, help=f"Custo da hora (padrão {DEFAULTS.mao_de_obra_custo_hora})"),
    margem: Optional[str] = typer.Option(None, help=f"Margem % sobre o preço (padrão {DEFAULTS.margem_lucro})"),
    extra: Optional[List[str]] = typer.Option(None, "--extra", help="Custo adicional chave=valor (tag, brinde, ...)"),
    categoria: Optional[str] = typer.Option(None),
    descricao: Optional[str] = typer.Option(None),
    imagem: Optional[str] = typer.Option(None, "--imagem"),
    db_path: str = DB_OPT,
):
    """Cadastra um produto e calcula custo e preço de venda."""
    with _tratando_erros():
        dados = _dados_produto(insumo, horas, custo_hora, margem, extra)
        dados.update(_sem_none({"nome": nome, "categoria": categoria, "descricao": descricao, "imagem_url": imagem}))
        p = uc_produtos.criar_produto(dados, db_path=db_path)
    _display_record(p, title="Produto Cadastrado")


@produto_app.command("calcular")
def produto_calcular(
    insumo: Optional[List[str]] = typer.Option(None, "--insumo", "-i", help="insumo_id:quantidade[:unidade]"),
    horas: Optional[str] = typer.Option(None),
    custo_hora: Optional[str] = typer.Option(None),
    margem: Optional[str] = typer.Option(None),
    extra: Optional[List[str]] = typer.Option(None, "--extra"),
    as_json: bool = JSON_OPT,
    db_path: str = DB_OPT,
):
    """Prévia de custo e preço sem gravar."""
    with _tratando_erros():
        calc = uc_produtos.calcular_custos(_dados_produto(insumo, horas, custo_hora, margem, extra), db_path=db_path)
    if as_json:
        _print_json(calc)
    else:
        _display_record(calc, title="Prévia de Custos")


@produto_app.command("listar")
def produto_listar(
    categoria: Optional[str] = typer.Option(None),
    busca: Optional[str] = typer.Option(None),
    todos: bool = typer.Option(False, "--todos", help="Inclui inativos"),
    ordenar: str = typer.Option("nome", help="nome | categoria | preco_venda | custo_total"),
    desc: bool = typer.Option(False, "--desc"),
    as_json: bool = JSON_OPT,
    db_path: str = DB_OPT,
):
    """Lista produtos com custo, preço e lucro."""
    with _tratando_erros():
        res = uc_produtos.listar_produtos(
            categoria=categoria, ativo=None if todos else True, busca=busca,
            ordenar=ordenar, direcao="DESC" if desc else "ASC", db_path=db_path,
        )
    if as_json:
        _print_json(res)
        return
    _display_table(res["produtos"], title="Produtos", columns=[
        "id", "nome", "categoria", "custo_total", "margem_lucro", "preco_venda", "lucro_unidade", "margem_real",
    ])
    s = res["stats"]
    console.print(
        f"[dim]Total: {s['total']} | Custo: R$ {_fmt(s['valor_total_custo'])} | "
        f"Faturamento potencial: R$ {_fmt(s['faturamento_potencial'])} | "
        f"Lucro potencial: R$ {_fmt(s['lucro_potencial'])}[/dim]"
    )


@produto_app.command("mostrar")
def produto_mostrar(produto_id: int = typer.Argument(...), as_json: bool = JSON_OPT, db_path: str = DB_OPT):
    """Mostra um produto e o detalhamento da ficha técnica."""
    with _tratando_erros():
        p = uc_produtos.buscar_produto(produto_id, db_path=db_path)
    if as_json:
        _print_json(p)
        return
    detalhes = p.pop("insumos_detalhados")
    _display_record(p, title=f"Produto #{produto_id}")
    _display_table(detalhes, title="Ficha Técnica")


@produto_app.command("editar")
def produto_editar(
    produto_id: int = typer.Argument(...),
    nome: Optional[str] = typer.Option(None),
    insumo: Optional[List[str]] = typer.Option(None, "--insumo", "-i", help="Substitui a ficha técnica"),
    horas: Optional[str] = typer.Option(None),
    custo_hora: Optional[str] = typer.Option(None),
    margem: Optional[str] = typer.Option(None),
    extra: Optional[List[str]] = typer.Option(None, "--extra", help="Substitui os custos adicionais"),
    categoria: Optional[str] = typer.Option(None),
    descricao: Optional[str] = typer.Option(None),
    imagem: Optional[str] = typer.Option(None, "--imagem"),
    ativo: Optional[bool] = typer.Option(None, "--ativo/--inativo"),
    db_path: str = DB_OPT,
):
    """Edita um produto; custo e preço são recalculados."""
    with _tratando_erros():
        dados = _dados_produto(insumo, horas, custo_hora, margem, extra)
        dados.update(_sem_none({
            "nome": nome, "categoria": categoria, "descricao": descricao, "imagem_url": imagem, "ativo": ativo,
        }))
        p = uc_produtos.atualizar_produto(produto_id, dados, db_path=db_path)
    _display_record(p, title="Produto Atualizado")


@produto_app.command("excluir")
def produto_excluir(
    produto_id: int = typer.Argument(...),
    yes: bool = typer.Option(False, "--yes", "-y"),
    db_path: str = DB_OPT,
):
    """Exclui um produto (as vendas mantêm nome e valores)."""
    if not yes and not typer.confirm(f"Excluir o produto {produto_id}?"):
        raise typer.Exit(code=0)
    with _tratando_erros():
        uc_produtos.excluir_produto(produto_id, db_path=db_path)
    typer.echo(f">> Produto {produto_id} excluído.")


@produto_app.command("simular")
def produto_simular(
    produto_id: int = typer.Argument(...),
    margem: Optional[List[str]] = typer.Option(None, "--margem", "-m", help="Margens em % (repetível)"),
    as_json: bool = JSON_OPT,
    db_path: str = DB_OPT,
):
    """Simula preço e lucro para várias margens."""
    with _tratando_erros():
        res = uc_produtos.simular_precos(
            produto_id, [parse_decimal(m) for m in margem] if margem else None, db_path=db_path,
        )
    if as_json:
        _print_json(res)
        return
    console.print(Panel(
        f"Custo total: R$ {_fmt(res['custo_total'])}\n"
        f"Margem atual: {_fmt(res['margem_atual'])}%  |  Preço atual: R$ {_fmt(res['preco_atual'])}",
        title=res["produto"],
    ))
    _display_table(res["simulacoes"], title="Simulação de Margens")


@produto_app.command("recalcular")
def produto_recalcular(produto_id: int = typer.Argument(...), db_path: str = DB_OPT):
    """Atualiza custo e preço com os custos atuais dos insumos."""
    with _tratando_erros():
        res = uc_produtos.recalcular_custos(produto_id, db_path=db_path)
    _display_record(res["calculos"], title="Custos Recalculados")
    typer.echo(">> Valores atualizados." if res["alterado"] else ">> Nenhuma alteração.")


@produto_app.command("categorias")
def produto_categorias(db_path: str = DB_OPT):
    """Lista as categorias de produtos ativos."""
    for c in uc_produtos.listar_categorias_produtos(db_path=db_path):
        typer.echo(c)


# -----------------------
# vendas
# -----------------------

venda_app = typer.Typer(help="Vendas")
app.add_typer(venda_app, name="venda")

ITEM_OPT = typer.Option(None, "--item", "-i", help="produto_id:quantidade[:margem][:brinde]")
COLUNAS_ITEM = [
    "produto_nome", "quantidade", "preco_unitario_final", "valor_total", "custo_total", "lucro", "eh_brinde",
]


def _mostrar_venda(v: Dict[str, Any]) -> None:
    itens = v.pop("itens")
    _display_record({k: val for k, val in v.items() if k not in ("criado_em", "atualizado_em")},
                    title=f"Venda {v['codigo']}")
    _display_table(itens, title="Itens", columns=COLUNAS_ITEM)


@venda_app.command("simular")
def venda_simular(item: Optional[List[str]] = ITEM_OPT, as_json: bool = JSON_OPT, db_path: str = DB_OPT):
    """Prévia de uma venda com o desconto progressivo."""
    with _tratando_erros():
        res = uc_vendas.simular_venda([parse_item_venda(i) for i in item or []], db_path=db_path)
    if as_json:
        _print_json(res)
        return
    _display_table(res["itens"], title="Itens", columns=COLUNAS_ITEM)
    _display_record(res["totais"], title="Totais")


@venda_app.command("criar")
def venda_criar(
    item: Optional[List[str]] = ITEM_OPT,
    cliente: Optional[str] = typer.Option(None),
    obs: Optional[str] = typer.Option(None, "--obs"),
    data: Optional[str] = typer.Option(None, help="AAAA-MM-DD (padrão: hoje)"),
    db_path: str = DB_OPT,
):
    """Cria uma venda em rascunho."""
    with _tratando_erros():
        v = uc_vendas.criar_venda(
            [parse_item_venda(i) for i in item or []], cliente=cliente, observacoes=obs, data=data, db_path=db_path,
        )
    _mostrar_venda(v)


@venda_app.command("listar")
def venda_listar(
    status: Optional[str] = typer.Option(None, help="rascunho | finalizada | cancelada"),
    de: Optional[str] = typer.Option(None, "--de", help="Data inicial AAAA-MM-DD"),
    ate: Optional[str] = typer.Option(None, "--ate", help="Data final AAAA-MM-DD"),
    cliente: Optional[str] = typer.Option(None),
    pagina: int = typer.Option(1),
    por_pagina: int = typer.Option(20),
    as_json: bool = JSON_OPT,
    db_path: str = DB_OPT,
):
    """Lista vendas (mais recentes primeiro)."""
    with _tratando_erros():
        res = uc_vendas.listar_vendas(status, de, ate, cliente, pagina, por_pagina, db_path=db_path)
    if as_json:
        _print_json(res)
        return
    _display_table(res["vendas"], title="Vendas", columns=[
        "id", "codigo", "data", "cliente", "quantidade_total", "desconto_percentual", "total", "lucro_total", "status",
    ])
    p, s = res["paginacao"], res["stats"]
    console.print(
        f"[dim]Página {p['pagina']}/{max(p['total_paginas'], 1)} | {s['total_vendas']} vendas | "
        f"Faturamento: R$ {_fmt(s['faturamento_total'])} | Lucro: R$ {_fmt(s['lucro_total'])} | "
        f"Ticket médio: R$ {_fmt(s['ticket_medio'])}[/dim]"
    )


@venda_app.command("mostrar")
def venda_mostrar(venda_id: int = typer.Argument(...), as_json: bool = JSON_OPT, db_path: str = DB_OPT):
    """Mostra uma venda com os itens."""
    with _tratando_erros():
        v = uc_vendas.buscar_venda(venda_id, db_path=db_path)
    if as_json:
        _print_json(v)
    else:
        _mostrar_venda(v)


@venda_app.command("editar")
def venda_editar(
    venda_id: int = typer.Argument(...),
    item: Optional[List[str]] = ITEM_OPT,
    cliente: Optional[str] = typer.Option(None),
    obs: Optional[str] = typer.Option(None, "--obs"),
    data: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
):
    """Edita uma venda em rascunho (itens recalculados com custos atuais)."""
    with _tratando_erros():
        v = uc_vendas.atualizar_venda(
            venda_id, [parse_item_venda(i) for i in item] if item else None,
            cliente=cliente, observacoes=obs, data=data, db_path=db_path,
        )
    _mostrar_venda(v)


@venda_app.command("finalizar")
def venda_finalizar(venda_id: int = typer.Argument(...), db_path: str = DB_OPT):
    """Finaliza uma venda em rascunho."""
    with _tratando_erros():
        v = uc_vendas.finalizar_venda(venda_id, db_path=db_path)
    typer.echo(f">> Venda {v['codigo']} finalizada.")


@venda_app.command("cancelar")
def venda_cancelar(
    venda_id: int = typer.Argument(...),
    motivo: Optional[str] = typer.Option(None, help="Motivo (vai para as observações)"),
    db_path: str = DB_OPT,
):
    """Cancela uma venda."""
    with _tratando_erros():
        v = uc_vendas.cancelar_venda(venda_id, motivo, db_path=db_path)
    typer.echo(f">> Venda {v['codigo']} cancelada.")


@venda_app.command("excluir")
def venda_excluir(
    venda_id: int = typer.Argument(...),
    yes: bool = typer.Option(False, "--yes", "-y"),
    db_path: str = DB_OPT,
):
    """Exclui uma venda e seus itens."""
    if not yes and not typer.confirm(f"Excluir a venda {venda_id}?"):
        raise typer.Exit(code=0)
    with _tratando_erros():
        uc_vendas.excluir_venda(venda_id, db_path=db_path)
    typer.echo(f">> Venda {venda_id} excluída.")


@venda_app.command("exportar")
def venda_exportar(
    de: Optional[str] = typer.Option(None, "--de"),
    ate: Optional[str] = typer.Option(None, "--ate"),
    destino: str = typer.Option(".", help="Pasta de destino"),
    todas: bool = typer.Option(False, "--todas", help="Inclui rascunhos e canceladas"),
    db_path: str = DB_OPT,
):
    """Exporta as vendas do período para XLSX."""
    with _tratando_erros():
        res = exportar_vendas_excel(de, ate, destino, status=None if todas else "finalizada", db_path=db_path)
    typer.echo(f">> {res['total_registros']} vendas exportadas para {res['path']}")


# -----------------------
# relatórios
# -----------------------

rel_app = typer.Typer(help="Relatórios e estatísticas")
app.add_typer(rel_app, name="rel")


@rel_app.command("resumo")
def rel_resumo(as_json: bool = JSON_OPT, db_path: str = DB_OPT):
    """Painel geral: contadores, estoque e financeiro."""
    res = uc_relatorios.resumo_geral(db_path=db_path)
    if as_json:
        _print_json(res)
        return
    _display_record(res["contadores"], title="Contadores")
    estoque = dict(res["estoque"])
    alertas = estoque.pop("alertas_estoque")
    _display_record(estoque, title="Estoque")
    _display_record(res["financeiro"], title="Financeiro")
    if alertas:
        _display_table(alertas, title="Alertas de Estoque")
    _display_table(res["produtos_mais_lucrativos"], title="Produtos Mais Lucrativos")


@rel_app.command("mensal")
def rel_mensal(as_json: bool = JSON_OPT, db_path: str = DB_OPT):
    """Evolução das vendas nos últimos 12 meses."""
    res = uc_relatorios.evolucao_vendas_mensal(db_path=db_path)
    if as_json:
        _print_json(res)
    else:
        _display_table(res, title="Evolução Mensal")


@rel_app.command("materiais")
def rel_materiais(as_json: bool = JSON_OPT, db_path: str = DB_OPT):
    """Insumos mais usados nas fichas técnicas."""
    res = uc_relatorios.materiais_mais_usados(db_path=db_path)
    if as_json:
        _print_json(res)
    else:
        _display_table(res, title="Insumos Mais Usados")


@rel_app.command("rentabilidade")
def rel_rentabilidade(as_json: bool = JSON_OPT, db_path: str = DB_OPT):
    """Produtos ordenados pela margem real."""
    res = uc_relatorios.analise_rentabilidade(db_path=db_path)
    if as_json:
        _print_json(res)
        return
    _display_table(res["produtos"], title="Rentabilidade", columns=[
        "id", "nome", "custo_total", "preco_venda", "lucro_unidade", "margem_real", "margem_configurada",
    ])
    e = res["estatisticas"]
    console.print(
        f"[dim]Margem média: {_fmt(e['margem_media'])}% | "
        f"Lucro médio por unidade: R$ {_fmt(e['lucro_medio_por_unidade'])}[/dim]"
    )


@rel_app.command("previsao")
def rel_previsao(
    dias: int = typer.Option(DEFAULTS.dias_analise, help="Janela de consumo em dias"),
    as_json: bool = JSON_OPT,
    db_path: str = DB_OPT,
):
    """Previsão de esgotamento dos insumos."""
    with _tratando_erros():
        res = uc_relatorios.previsao_estoque(dias_analise=dias, db_path=db_path)
    if as_json:
        _print_json(res)
        return
    _display_table(res["previsoes"], title=f"Previsão de Estoque ({dias} dias)", columns=[
        "id", "nome", "variacao", "estoque_atual", "consumo_total", "consumo_diario", "dias_para_esgotar", "situacao",
    ])
    _display_record(res["resumo"], title="Resumo")


@rel_app.command("periodo")
def rel_periodo(
    de: Optional[str] = typer.Option(None, "--de"),
    ate: Optional[str] = typer.Option(None, "--ate"),
    agrupar: str = typer.Option("mes", help="dia | semana | mes"),
    as_json: bool = JSON_OPT,
    db_path: str = DB_OPT,
):
    """Vendas agrupadas por período."""
    with _tratando_erros():
        res = uc_relatorios.relatorio_vendas_periodo(de, ate, agrupar, db_path=db_path)
    if as_json:
        _print_json(res)
        return
    _display_table(res["periodos"], title=f"Vendas por {agrupar}", columns=[
        "periodo", "total_vendas", "quantidade_itens", "faturamento", "lucro",
    ])
    _display_record(res["stats"], title="Totais")


@rel_app.command("ranking-produtos")
def rel_ranking_produtos(
    de: Optional[str] = typer.Option(None, "--de"),
    ate: Optional[str] = typer.Option(None, "--ate"),
    limite: int = typer.Option(DEFAULTS.limite_ranking),
    as_json: bool = JSON_OPT,
    db_path: str = DB_OPT,
):
    """Produtos com maior faturamento."""
    with _tratando_erros():
        res = uc_relatorios.ranking_produtos(de, ate, limite, db_path=db_path)
    if as_json:
        _print_json(res)
    else:
        _display_table(res["ranking"], title=f"Top {limite} Produtos")


@rel_app.command("ranking-clientes")
def rel_ranking_clientes(
    de: Optional[str] = typer.Option(None, "--de"),
    ate: Optional[str] = typer.Option(None, "--ate"),
    limite: int = typer.Option(DEFAULTS.limite_ranking),
    as_json: bool = JSON_OPT,
    db_path: str = DB_OPT,
):
    """Clientes que mais compraram."""
    with _tratando_erros():
        res = uc_relatorios.ranking_clientes(de, ate, limite, db_path=db_path)
    if as_json:
        _print_json(res)
    else:
        _display_table(res["ranking"], title=f"Top {limite} Clientes")


# -----------------------
# backup
# -----------------------

backup_app = typer.Typer(help="Backup do banco de dados")
app.add_typer(backup_app, name="backup")

DIR_OPT = typer.Option(BACKUP_DIR, "--dir", help="Pasta dos backups")


@backup_app.command("criar")
def backup_criar(backup_dir: str = DIR_OPT, db_path: str = DB_OPT):
    """Cria o backup de hoje (se ainda não existir)."""
    with _tratando_erros():
        res = uc_backup.criar_backup(db_path, backup_dir)
    if res["existed"]:
        typer.echo(f">> Backup de hoje já existe: {res['name']}")
    else:
        typer.echo(f">> Backup criado: {res['name']} ({res['size'] / 1024:.1f} KB)")


@backup_app.command("listar")
def backup_listar(backup_dir: str = DIR_OPT, as_json: bool = JSON_OPT):
    """Lista os backups, do mais recente ao mais antigo."""
    res = uc_backup.listar_backups(backup_dir)
    if as_json:
        _print_json(res)
    else:
        _display_table(res, title="Backups", columns=["name", "size", "created", "age"])


@backup_app.command("verificar")
def backup_verificar(path: str = typer.Argument(..., help="Arquivo de backup")):
    """Verifica a integridade de um backup."""
    if uc_backup.verificar_backup(path):
        typer.echo(f">> Backup íntegro: {path}")
    else:
        console.print(f"[bold red]Backup corrompido ou ilegível:[/] {path}")
        raise typer.Exit(code=1)


@backup_app.command("limpar")
def backup_limpar(backup_dir: str = DIR_OPT):
    """Aplica a retenção (quantidade, tamanho e idade)."""
    removidos = uc_backup.limpar_backups(backup_dir)
    typer.echo(f">> {len(removidos)} backup(s) removido(s).")


@backup_app.command("status")
def backup_status(backup_dir: str = DIR_OPT, as_json: bool = JSON_OPT):
    """Situação do backup: ok, warning ou alert."""
    res = uc_backup.status_backup(backup_dir)
    if as_json:
        _print_json(res)
        return
    cor = {"ok": "green", "warning": "yellow", "alert": "red"}[res["status"]]
    console.print(Panel(f"{res['message']}\nBackups: {res['total_backups']}",
                        title=f"Backup: {res['status']}", border_style=cor))


@backup_app.command("stats")
def backup_stats(backup_dir: str = DIR_OPT, as_json: bool = JSON_OPT):
    """Estatísticas da pasta de backups."""
    res = uc_backup.estatisticas_backup(backup_dir)
    if as_json:
        _print_json(res)
        return
    _display_record({k: v for k, v in res.items() if k != "backups"}, title="Estatísticas de Backup")


@backup_app.command("auto")
def backup_auto(backup_dir: str = DIR_OPT, db_path: str = DB_OPT):
    """Cria backup se o último tiver mais de 24h e aplica a retenção."""
    with _tratando_erros():
        res = uc_backup.verificar_e_criar_backup(db_path, backup_dir)
    if res["criado"] and not res["criado"]["existed"]:
        typer.echo(f">> Backup criado: {res['criado']['name']}")
    else:
        typer.echo(">> Backup recente encontrado.")


# Entry point opcional:
def main():
    app()


if __name__ == "__main__":
    main()
