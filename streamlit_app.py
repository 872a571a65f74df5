import logging

import pandas as pd
import streamlit as st

from config import configure_logging
from finance import FinanceDomainError, PaymentFrequency
from formatting import format_accounting, format_currency, format_number, format_percent, parse_amount, parse_decimal
from history import LedgerAverages, seed_first_year
from model import (
    assumptions_from_frame,
    base_case_scenario,
    cash_flow_table,
    run_scenario,
    schedule_table,
    summary_metrics,
)
from scenarios import ScenarioBook, compare_scenarios, one_way_sensitivity

configure_logging()
logger = logging.getLogger(__name__)

st.set_page_config(page_title="Análise de Investimento", layout="wide")
st.title("Análise de Investimento – VPL, TIR e Payback")

YEAR_COLUMNS = {
    "year": "Ano",
    "unit_count": "Nº animais",
    "yield_per_unit_per_day": "Produção/animal/dia (L)",
    "days_in_year": "Dias no ano",
    "loss_percent": "Quebra (%)",
    "sell_price": "Preço venda (R$/L)",
    "production_cost": "Custo produção (R$/L)",
    "extra_revenue": "Receitas extras (R$)",
}

if "book" not in st.session_state:
    st.session_state.book = ScenarioBook([base_case_scenario()])
book: ScenarioBook = st.session_state.book

with st.sidebar:
    st.header("Cenários")
    escolhido = st.selectbox("Cenário", book.names, index=book.names.index(book.selected.name))
    book.select(escolhido)
    col_novo, col_remover = st.columns(2)
    if col_novo.button("Novo cenário"):
        book.create(book.selected.parameters)
        st.rerun()
    if col_remover.button("Remover"):
        try:
            book.remove(book.selected.name)
        except ValueError as exc:
            st.warning(str(exc))
        else:
            st.rerun()

    scenario = book.selected
    p = scenario.parameters
    k = scenario.name

    st.header("Investimento")
    nome = st.text_input("Nome do cenário", value=scenario.name, key=f"{k}:nome").strip()
    valor = parse_amount(
        st.text_input("Valor do investimento (R$)", value=format_number(p.principal), key=f"{k}:valor"),
        default=p.principal,
    )
    taxa = parse_decimal(
        st.text_input("Taxa de juros (% a.a.)", value=format_number(p.annual_rate, 1), key=f"{k}:taxa"),
        default=p.annual_rate,
    )
    prazo = st.number_input("Prazo (anos)", min_value=1, max_value=40, value=int(p.term_periods), key=f"{k}:prazo")
    carencia = st.number_input("Anos de carência", min_value=0, max_value=10, value=int(p.grace_years), key=f"{k}:carencia")
    ano_estudo = st.number_input(
        "Ano de estudo", min_value=2000, max_value=2100, value=int(p.study_start_year), key=f"{k}:ano"
    )
    anos_projecao = st.number_input(
        "Anos de projeção", min_value=1, max_value=40, value=int(p.projection_years or len(scenario.assumptions)),
        key=f"{k}:anos",
    )
    frequencia = st.selectbox(
        "Frequência de pagamento",
        [PaymentFrequency.ANNUAL, PaymentFrequency.MONTHLY],
        index=0 if p.payment_frequency is PaymentFrequency.ANNUAL else 1,
        format_func=lambda f: "Anual (SAC)" if f is PaymentFrequency.ANNUAL else "Mensal (Price)",
        key=f"{k}:frequencia",
    )
    usar_taxa_juros = st.checkbox(
        "Descontar pela taxa de juros", value=scenario.discount_rate is None, key=f"{k}:usar_taxa"
    )
    taxa_desconto = None
    if not usar_taxa_juros:
        taxa_desconto = parse_decimal(
            st.text_input(
                "Taxa de desconto (% a.a.)", value=format_number(scenario.effective_discount_rate, 1), key=f"{k}:desconto"
            ),
            default=scenario.effective_discount_rate,
        )

    st.subheader("Histórico (opcional)")
    receitas_csv = st.file_uploader("Receitas (date, total_amount, quantity)", type="csv")
    despesas_csv = st.file_uploader("Despesas (date, amount)", type="csv")
    aplicar_historico = st.button(
        "Aplicar médias ao ano inicial", disabled=receitas_csv is None or despesas_csv is None
    )

if nome and nome != scenario.name:
    try:
        book.rename(scenario.name, nome)
    except ValueError as exc:
        st.warning(str(exc))
    else:
        st.rerun()

try:
    scenario = book.update_parameters(
        scenario.name,
        principal=valor,
        annual_rate=taxa,
        term_periods=int(prazo),
        grace_years=int(carencia),
        payment_frequency=frequencia,
        study_start_year=int(ano_estudo),
        projection_years=int(anos_projecao),
    )
    scenario = book.update_scenario(scenario.name, discount_rate=taxa_desconto)
    if aplicar_historico:
        lookup = LedgerAverages(pd.read_csv(receitas_csv), pd.read_csv(despesas_csv))
        scenario = book.update_scenario(scenario.name, assumptions=seed_first_year(scenario.assumptions, lookup))

    st.subheader("Premissas por ano")
    editable = pd.DataFrame([vars(a) for a in scenario.assumptions]).rename(columns=YEAR_COLUMNS)
    edited = st.data_editor(
        editable,
        use_container_width=True,
        hide_index=True,
        disabled=[YEAR_COLUMNS["year"]],
        key=f"{k}:premissas:{scenario.parameters.study_start_year}:{len(scenario.assumptions)}",
    )
    years = assumptions_from_frame(edited.rename(columns={v: f for f, v in YEAR_COLUMNS.items()}))
    scenario = book.update_scenario(scenario.name, assumptions=years)
    result = run_scenario(scenario)
except FinanceDomainError as exc:
    logger.info("rejected scenario inputs: %s", exc)
    st.error(f"Entrada inválida: {exc}")
    st.stop()

params = scenario.parameters
m = summary_metrics(result)
st.caption("Produção (L) = animais × produção/animal/dia × dias")
st.dataframe(
    pd.DataFrame({"Ano": [a.year for a in years], "Produção (L)": [a.derived_output for a in years]}),
    hide_index=True,
)

c1, c2, c3, c4 = st.columns(4)
c1.metric("VPL", format_currency(m["npv"]), "Investimento viável" if m["viable"] else "Investimento inviável")
c2.metric(
    "Payback",
    f"{format_number(m['payback_fractional'], 2)} anos" if m["payback_periods"] else "N/A",
)
irr_label = format_percent(m["irr_pct"])
if m["irr_status"] == "max_iterations":
    irr_label += " (não convergiu)"
c3.metric("TIR", irr_label, f"Taxa {format_percent(params.annual_rate)}")
c4.metric("Margem unitária média", f"{format_currency(m['average_unit_margin'], 2)}/L")

st.subheader("Análise de Fluxo de Caixa (FCFE)")
cf = cash_flow_table(result)
money_cols = [
    "investment", "gross_cash_generation", "extra_revenue", "principal_due", "interest_due",
    "net_cash_flow", "accumulated_cash_flow", "discounted_cash_flow", "accumulated_discounted", "irr_check",
]
shown = cf.copy()
for col in money_cols:
    shown[col] = shown[col].map(lambda v: "–" if pd.isna(v) else format_accounting(v))
shown["discount_factor"] = cf["discount_factor"].map(lambda v: format_number(v, 6))
shown["payback"] = cf["payback"].map(lambda v: "" if pd.isna(v) else format_number(v, 2))
st.dataframe(shown, use_container_width=True, hide_index=True)
st.line_chart(cf.set_index("period")[["net_cash_flow", "accumulated_discounted"]])

st.subheader(
    "Tabela de Amortização ("
    + ("Sistema Price" if params.payment_frequency is PaymentFrequency.MONTHLY else "SAC")
    + ")"
)
sched = schedule_table(result.schedule)
st.dataframe(sched, use_container_width=True, hide_index=True)
st.caption(
    f"Total juros: {format_currency(m['total_interest_paid'])} · "
    f"Total principal: {format_currency(m['total_principal_paid'])}"
)

st.download_button(
    "Fluxo de caixa como CSV",
    data=cf.to_csv(index=False).encode("utf-8"),
    file_name="fluxo_caixa.csv",
    mime="text/csv",
)

st.subheader("Comparação de cenários")
st.dataframe(compare_scenarios(book), use_container_width=True, hide_index=True)

with st.expander("Sensibilidade"):
    delta_preco = st.slider("Variação de preço (R$/L)", 0.0, 1.0, 0.25, 0.05)
    delta_taxa = st.slider("Variação de taxa (p.p.)", 0.0, 10.0, 2.0, 0.5)
    avg_price = sum(a.sell_price for a in years) / len(years)
    avg_cost = sum(a.production_cost for a in years) / len(years)
    sens = one_way_sensitivity(scenario, {
        "sell_price": (avg_price - delta_preco, avg_price + delta_preco),
        "production_cost": (avg_cost - delta_preco, avg_cost + delta_preco),
        "annual_rate": (params.annual_rate - delta_taxa, params.annual_rate + delta_taxa),
    })
    st.dataframe(sens, use_container_width=True, hide_index=True)
