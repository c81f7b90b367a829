# atelie/adapters/tui.py
"""
Interface terminal (Textual) para consulta rápida do ateliê.

Menu em árvore com listagens (insumos, produtos, vendas), relatórios e
ações de sistema (migrações, backup, logs). Os dados vêm dos casos de
uso; ``montar_tabela`` monta título, colunas e linhas de cada ação.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, ScrollableContainer, Vertical
from textual.screen import ModalScreen, Screen
from textual.widgets import Button, DataTable, Footer, Header, Input, Label, Static, Tree

from atelie.config import BACKUP_DIR, DB_PATH, DEFAULTS
from atelie.infra.db import connect
from atelie.infra.logger import get_log_summary, log_system_event
from atelie.infra.migrations import apply_migrations
from atelie.infra.views import create_views
from atelie.usecases import backup as uc_backup
from atelie.usecases import materiais as uc_materiais
from atelie.usecases import produtos as uc_produtos
from atelie.usecases import relatorios as uc_relatorios
from atelie.usecases import vendas as uc_vendas

Tabela = Tuple[str, List[str], List[List[str]]]


def _celula(val: Any) -> str:
    if val is None:
        return ""
    if isinstance(val, bool):
        return "sim" if val else "não"
    if isinstance(val, (Decimal, float)):
        return f"{val:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return str(val)


def _linhas(registros: List[Dict[str, Any]], colunas: List[str]) -> List[List[str]]:
    return [[_celula(r.get(c)) for c in colunas] for r in registros]


def _tabela_db(db_path: str, sql: str) -> List[List[str]]:
    with connect(db_path) as c:
        return [[_celula(v) for v in row] for row in c.execute(sql).fetchall()]


def montar_tabela(acao: str, db_path: str = DB_PATH, params: Optional[Dict[str, str]] = None) -> Tabela:
    """Executa a ação do menu e devolve ``(titulo, colunas, linhas)``."""
    params = params or {}
    if acao == "ver-insumos":
        colunas = ["id", "nome", "variacao", "categoria", "unidade", "custo_unitario", "estoque_atual", "estoque_minimo"]
        dados = uc_materiais.listar_materiais(db_path=db_path)["materiais"]
        return "Insumos", colunas, _linhas(dados, colunas)
    if acao == "ver-estoque":
        colunas = ["id", "nome", "variacao", "unidade", "estoque_atual", "estoque_minimo", "valor_estoque"]
        sql = f"SELECT {', '.join(colunas)} FROM vw_material_estoque ORDER BY nome COLLATE NOCASE, variacao"
        return "Estoque de Insumos", colunas, _tabela_db(db_path, sql)
    if acao == "ver-estoque-baixo":
        colunas = ["id", "nome", "variacao", "unidade", "estoque_atual", "estoque_minimo"]
        sql = (f"SELECT {', '.join(colunas)} FROM vw_material_estoque "
               "WHERE estoque_baixo = 1 ORDER BY nome COLLATE NOCASE, variacao")
        return "Estoque Baixo", colunas, _tabela_db(db_path, sql)
    if acao == "ver-produtos":
        colunas = ["id", "nome", "categoria", "custo_total", "margem_lucro", "preco_venda", "margem_real"]
        dados = uc_produtos.listar_produtos(db_path=db_path)["produtos"]
        return "Produtos", colunas, _linhas(dados, colunas)
    if acao == "ver-vendas":
        colunas = ["codigo", "data", "cliente", "quantidade_total", "total", "lucro_total", "status"]
        dados = uc_vendas.listar_vendas(por_pagina=50, db_path=db_path)["vendas"]
        return "Vendas Recentes", colunas, _linhas(dados, colunas)
    if acao == "ver-vendas-finalizadas":
        colunas = ["codigo", "data", "ano_mes", "cliente", "quantidade_total", "total", "lucro_total"]
        sql = f"SELECT {', '.join(colunas)} FROM vw_vendas_finalizadas ORDER BY data DESC, id DESC"
        return "Vendas Finalizadas", colunas, _tabela_db(db_path, sql)
    if acao == "rel-mensal":
        colunas = ["mes", "numero_vendas", "quantidade", "faturamento", "lucro", "ticket_medio"]
        dados = uc_relatorios.evolucao_vendas_mensal(db_path=db_path)
        return "Evolução Mensal", colunas, _linhas(dados, colunas)
    if acao == "rel-materiais":
        colunas = ["nome", "variacao", "unidade", "quantidade_total_usada", "produtos_que_utilizam", "valor_total_utilizado"]
        dados = uc_relatorios.materiais_mais_usados(db_path=db_path)
        return "Insumos Mais Usados", colunas, _linhas(dados, colunas)
    if acao == "rel-rentabilidade":
        colunas = ["nome", "custo_total", "preco_venda", "lucro_unidade", "margem_real", "margem_configurada"]
        dados = uc_relatorios.analise_rentabilidade(db_path=db_path)["produtos"]
        return "Rentabilidade", colunas, _linhas(dados, colunas)
    if acao == "rel-previsao":
        dias = int(params.get("dias") or DEFAULTS.dias_analise)
        colunas = ["nome", "variacao", "estoque_atual", "consumo_diario", "dias_para_esgotar", "situacao"]
        dados = uc_relatorios.previsao_estoque(dias_analise=dias, db_path=db_path)["previsoes"]
        return f"Previsão de Estoque ({dias} dias)", colunas, _linhas(dados, colunas)
    if acao == "rel-periodo":
        agrupar = params.get("agrupar") or "mes"
        colunas = ["periodo", "total_vendas", "quantidade_itens", "faturamento", "lucro"]
        dados = uc_relatorios.relatorio_vendas_periodo(
            params.get("de") or None, params.get("ate") or None, agrupar, db_path=db_path,
        )["periodos"]
        return f"Vendas por {agrupar}", colunas, _linhas(dados, colunas)
    if acao == "rel-ranking-produtos":
        colunas = ["produto_nome", "total_vendas", "quantidade_vendida", "faturamento", "lucro", "preco_medio"]
        dados = uc_relatorios.ranking_produtos(db_path=db_path)["ranking"]
        return "Ranking de Produtos", colunas, _linhas(dados, colunas)
    if acao == "rel-ranking-clientes":
        colunas = ["cliente", "total_compras", "quantidade_itens", "valor_gasto", "ultima_compra", "ticket_medio"]
        dados = uc_relatorios.ranking_clientes(db_path=db_path)["ranking"]
        return "Ranking de Clientes", colunas, _linhas(dados, colunas)
    if acao == "ver-backups":
        colunas = ["name", "size", "created", "age"]
        dados = uc_backup.listar_backups(BACKUP_DIR)
        return "Backups", colunas, _linhas(dados, colunas)
    raise ValueError(f"ação desconhecida: {acao}")


class OutputDataTableScreen(Screen):
    """Tela com o resultado de uma consulta em DataTable."""
    BINDINGS = [
        ("escape", "app.pop_screen", "Voltar"),
        ("q", "app.pop_screen", "Voltar"),
    ]

    def __init__(self, title: str, columns: list, rows: list) -> None:
        super().__init__()
        self.title = title
        self.columns = columns
        self.rows = rows

    def compose(self) -> ComposeResult:
        yield Header()
        with ScrollableContainer():
            yield Static(f"📋 {self.title}", classes="output-title")
            dt = DataTable(zebra_stripes=True)
            dt.add_columns(*self.columns)
            for row in self.rows:
                dt.add_row(*row)
            yield dt
        yield Footer()


class OutputScreen(Screen):
    """Tela de texto (resultado de comandos e logs)."""
    BINDINGS = [
        ("escape", "app.pop_screen", "Voltar"),
        ("q", "app.pop_screen", "Voltar"),
    ]

    def __init__(self, title: str, content: str) -> None:
        super().__init__()
        self.title = title
        self.content = content

    def compose(self) -> ComposeResult:
        yield Header()
        with ScrollableContainer():
            yield Static(f"📋 {self.title}", classes="output-title")
            yield Static(self.content, markup=False)
        yield Footer()


class StatusDisplay(Static):
    """Banco de dados, backup e resumo do mês."""

    def __init__(self, db_path: str) -> None:
        super().__init__()
        self.db_path = db_path

    def on_mount(self) -> None:
        self.refresh_status()

    def refresh_status(self) -> None:
        info = []
        db = Path(self.db_path)
        if db.exists():
            info.append(f"✅ Banco: {self.db_path} ({db.stat().st_size / 1024:.1f} KB)")
            resumo = uc_relatorios.resumo_geral(db_path=self.db_path)
            c, f = resumo["contadores"], resumo["financeiro"]
            info.append(f"🧵 Insumos: {c['insumos']}  |  🎁 Produtos: {c['produtos']}  |  🧾 Vendas: {c['vendas']}")
            info.append(f"💰 Faturamento do mês: R$ {_celula(f['faturamento_mes'])}  |  Lucro: R$ {_celula(f['lucro_mes'])}")
            if resumo["estoque"]["insumos_estoque_baixo"]:
                info.append(f"⚠️ Insumos com estoque baixo: {resumo['estoque']['insumos_estoque_baixo']}")
        else:
            info.append(f"❌ Banco: {self.db_path} (não encontrado)")
        status = uc_backup.status_backup(BACKUP_DIR)
        icone = {"ok": "✅", "warning": "⚠️", "alert": "🚨"}[status["status"]]
        info.append(f"{icone} Backup: {status['message']}")
        self.update("\n".join(info))


class MenuTreeWidget(Tree):
    """Árvore de navegação principal."""

    def __init__(self) -> None:
        super().__init__("🧶 Ateliê - Menu Principal")
        self.setup_menu_tree()

    def setup_menu_tree(self) -> None:
        cad = self.root.add("📦 Cadastros", data="cadastros")
        cad.add_leaf("🧵 Ver Insumos", data="ver-insumos")
        cad.add_leaf("📦 Estoque de Insumos", data="ver-estoque")
        cad.add_leaf("⚠️ Estoque Baixo", data="ver-estoque-baixo")
        cad.add_leaf("🎁 Ver Produtos", data="ver-produtos")
        cad.add_leaf("🧾 Vendas Recentes", data="ver-vendas")
        cad.add_leaf("✅ Vendas Finalizadas", data="ver-vendas-finalizadas")

        rel = self.root.add("📊 Relatórios", data="relatorios")
        rel.add_leaf("📈 Evolução Mensal", data="rel-mensal")
        rel.add_leaf("🧵 Insumos Mais Usados", data="rel-materiais")
        rel.add_leaf("💹 Rentabilidade", data="rel-rentabilidade")
        rel.add_leaf("⏳ Previsão de Estoque", data="rel-previsao")
        rel.add_leaf("📅 Vendas por Período", data="rel-periodo")
        rel.add_leaf("🔝 Ranking de Produtos", data="rel-ranking-produtos")
        rel.add_leaf("👥 Ranking de Clientes", data="rel-ranking-clientes")

        sis = self.root.add("⚙️ Sistema", data="sistema")
        sis.add_leaf("🔄 Aplicar Migrações", data="migrate")
        sis.add_leaf("💾 Criar Backup", data="backup")
        sis.add_leaf("🗂️ Ver Backups", data="ver-backups")
        sis.add_leaf("📋 Logs de Vendas", data="logs-vendas")
        sis.add_leaf("📋 Logs do Sistema", data="logs-system")


class ReportParametersForm(ModalScreen):
    """Parâmetros dos relatórios de previsão e de período."""
    BINDINGS = [
        ("escape", "app.pop_screen", "Cancelar"),
    ]

    def __init__(self, report_type: str) -> None:
        super().__init__()
        self.report_type = report_type
        self.inputs: Dict[str, Input] = {}

    def compose(self) -> ComposeResult:
        with Container(id="report-params-modal"):
            titulo = {"rel-previsao": "⏳ Previsão de Estoque", "rel-periodo": "📅 Vendas por Período"}
            yield Static(titulo.get(self.report_type, "📊 Relatório"), classes="modal-title")
            with Vertical():
                if self.report_type == "rel-previsao":
                    yield Label("Janela de análise (dias):")
                    self.inputs["dias"] = Input(placeholder=str(DEFAULTS.dias_analise), id="dias-input")
                    yield self.inputs["dias"]
                else:
                    yield Label("Início (AAAA-MM-DD, opcional):")
                    self.inputs["de"] = Input(placeholder="2025-01-01", id="de-input")
                    yield self.inputs["de"]
                    yield Label("Fim (AAAA-MM-DD, opcional):")
                    self.inputs["ate"] = Input(placeholder="2025-12-31", id="ate-input")
                    yield self.inputs["ate"]
                    yield Label("Agrupar por (dia, semana, mes):")
                    self.inputs["agrupar"] = Input(placeholder="mes", id="agrupar-input")
                    yield self.inputs["agrupar"]
                with Horizontal():
                    yield Button("📊 Gerar", variant="primary", id="generate-btn")
                    yield Button("❌ Cancelar", id="cancel-btn")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "generate-btn":
            dias = self.inputs.get("dias")
            if dias is not None and dias.value.strip() and not dias.value.strip().isdigit():
                self.notify("❌ Informe um número de dias!", severity="warning")
                return
            self.dismiss({k: w.value.strip() for k, w in self.inputs.items()})
        elif event.button.id == "cancel-btn":
            self.app.pop_screen()


class AtelieApp(App):
    """Aplicação Textual do ateliê."""

    CSS = """
    Screen {
        background: #1a0f1f;
    }

    .modal-title, .output-title {
        background: #5a2a5e;
        color: #ffffff;
        text-align: center;
        padding: 1;
        margin-bottom: 1;
    }

    Container#report-params-modal {
        background: #2a1a30;
        border: solid #d48fd9;
        width: 60;
        height: 25;
        margin: 2;
    }

    Tree {
        background: #241629;
        color: #f0ddf2;
    }

    StatusDisplay {
        background: #5a2a5e;
        color: #ffffff;
        padding: 1;
    }

    Button {
        margin: 1;
    }
    """

    TITLE = "🧶 Ateliê - Terminal UI"
    BINDINGS = [
        ("q", "quit", "Sair"),
        ("r", "refresh", "Atualizar"),
    ]

    def __init__(self, db_path: str = DB_PATH) -> None:
        super().__init__()
        self.db_path = db_path
        self.status_display: Optional[StatusDisplay] = None

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal():
            with Container(classes="left-panel"):
                yield MenuTreeWidget()
            with Vertical(classes="right-panel"):
                self.status_display = StatusDisplay(self.db_path)
                yield self.status_display
                yield Static(
                    "Use ↑↓ para navegar, ENTER para abrir, 'r' para atualizar e 'q' para sair.",
                    classes="info-panel",
                )
        yield Footer()

    def on_tree_node_selected(self, event: Tree.NodeSelected) -> None:
        if event.node.data and not event.node.children:
            self.execute_action(event.node.data)

    def execute_action(self, action: str) -> None:
        log_system_event("tui_action", {"action": action})
        comandos: Dict[str, Callable[[], None]] = {
            "migrate": self.run_migrate,
            "backup": self.run_backup,
            "logs-vendas": lambda: self.show_log_content("vendas"),
            "logs-system": lambda: self.show_log_content("system"),
        }
        if action in comandos:
            comandos[action]()
        elif action in ("rel-previsao", "rel-periodo"):
            self.push_screen(ReportParametersForm(action), lambda params: self.run_report(action, params))
        else:
            self.run_report(action, {})

    def run_report(self, action: str, params: Optional[Dict[str, str]]) -> None:
        if params is None:
            return
        try:
            titulo, colunas, linhas = montar_tabela(action, self.db_path, params)
        except Exception as e:
            log_system_event("tui_action_error", {"action": action, "error": str(e)}, level="error")
            self.notify(f"❌ Erro: {e}", severity="error")
            return
        if linhas:
            self.push_screen(OutputDataTableScreen(titulo, colunas, linhas))
        else:
            self.push_screen(OutputScreen(titulo, "Nenhum dado encontrado."))

    def run_migrate(self) -> None:
        try:
            apply_migrations(self.db_path)
            create_views(self.db_path)
            self.notify("✅ Migrações aplicadas!")
            self.action_refresh()
        except Exception as e:
            self.notify(f"❌ Erro ao migrar: {e}", severity="error")

    def run_backup(self) -> None:
        try:
            res = uc_backup.criar_backup(self.db_path, BACKUP_DIR)
            msg = "Backup de hoje já existe" if res["existed"] else "Backup criado"
            self.notify(f"💾 {msg}: {res['name']}")
            self.action_refresh()
        except Exception as e:
            self.notify(f"❌ Erro no backup: {e}", severity="error")

    def show_log_content(self, log_type: str) -> None:
        log_system_event("view_logs", {"log_type": log_type})
        self.push_screen(OutputScreen(f"📋 Logs - {log_type}", get_log_summary(log_type, lines=500)))

    def action_refresh(self) -> None:
        if self.status_display:
            self.status_display.refresh_status()
        self.notify("🔄 Status atualizado!", timeout=2)


def main_tui(db_path: str = DB_PATH) -> None:
    """Inicia a TUI: garante schema e views e faz o backup automático."""
    if Path(db_path).exists():
        apply_migrations(db_path)
        create_views(db_path)
        uc_backup.verificar_e_criar_backup(db_path, BACKUP_DIR)
    AtelieApp(db_path).run()


if __name__ == "__main__":
    main_tui()
