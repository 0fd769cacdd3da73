"""
Backend visualization module for the Pecos metabolism pipeline.
Provides plotly figures for daily estimates, DO fit diagnostics and aligned inputs.
"""

import os
import logging

import numpy as np
import pandas as pd
import plotly.graph_objs as go
import plotly.io as pio
from plotly.subplots import make_subplots

import config

logger = logging.getLogger(__name__)

PARAMETER_COLORS = {
    "GPP": (46, 139, 87),
    "ER": (178, 34, 34),
    "K600": (70, 130, 180),
}


def _band_traces(dates, estimate, lower, upper, name, color):
    """Estimate line plus a filled confidence band between lower and upper."""
    r, g, b = color
    return [
        go.Scatter(
            x=list(dates) + list(dates[::-1]),
            y=list(upper) + list(lower[::-1]),
            fill='toself',
            fillcolor=f'rgba({r}, {g}, {b}, 0.2)',
            line=dict(width=0),
            hoverinfo='skip',
            showlegend=False,
            name=f'{name} CI',
        ),
        go.Scatter(
            x=dates,
            y=estimate,
            mode='lines+markers',
            line=dict(color=f'rgb({r}, {g}, {b})', width=2),
            marker=dict(size=5),
            name=name,
            hovertemplate=f'{name}: %{{y:.2f}}<extra></extra>',
        ),
    ]


def generate_daily_metabolism_plot(daily, site=None):
    """Daily GPP and ER (top) and K600 (bottom) with confidence bands."""
    daily = daily.copy()
    daily['date'] = pd.to_datetime(daily['date'])
    daily = daily.sort_values('date')
    usable = daily[daily[['GPP', 'ER', 'K600']].notna().all(axis=1)]
    dates = usable['date'].dt.strftime('%Y-%m-%d').tolist()

    fig = make_subplots(
        rows=2, cols=1, shared_xaxes=True, vertical_spacing=0.08,
        subplot_titles=('GPP and ER (g O2 m-2 d-1)', 'K600 (d-1)'),
    )
    for name, row in (('GPP', 1), ('ER', 1), ('K600', 2)):
        for trace in _band_traces(
            dates,
            usable[name].tolist(),
            usable[f'{name}_lower'].to_numpy(),
            usable[f'{name}_upper'].to_numpy(),
            name,
            PARAMETER_COLORS[name],
        ):
            fig.add_trace(trace, row=row, col=1)
    fig.add_hline(y=0, line=dict(color='gray', dash='dot', width=1), row=1, col=1)

    site_label = f' - {site}' if site else ''
    fig.update_layout(
        title=f'Daily Metabolism Estimates{site_label}',
        hovermode='x unified',
        height=config.PLOT_HEIGHT * 1.4,
        width=config.PLOT_WIDTH,
        template='plotly_white',
    )
    dropped = len(daily) - len(usable)
    if dropped:
        logger.info(f"Daily plot omits {dropped} days without estimates")
    return fig


def generate_do_comparison_plot(predicted, site=None):
    """Observed vs modelled dissolved oxygen on solar time."""
    predicted = predicted.sort_values('solar.time')
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=predicted['solar.time'],
        y=predicted['DO.obs'],
        mode='markers',
        marker=dict(size=3, color='rgba(30, 60, 90, 0.6)'),
        name='Observed DO',
    ))
    fig.add_trace(go.Scatter(
        x=predicted['solar.time'],
        y=predicted['DO.mod'],
        mode='lines',
        line=dict(color='darkorange', width=2),
        name='Modelled DO',
    ))

    if len(predicted):
        rmse = float(np.sqrt(np.nanmean((predicted['DO.obs'] - predicted['DO.mod']) ** 2)))
        subtitle = f' (RMSE {rmse:.3f} mg/L)'
    else:
        subtitle = ''
    site_label = f' - {site}' if site else ''
    fig.update_layout(
        title=f'Observed vs Modelled DO{site_label}{subtitle}',
        xaxis_title='Solar time',
        yaxis_title='DO (mg/L)',
        height=config.PLOT_HEIGHT,
        width=config.PLOT_WIDTH,
        template='plotly_white',
    )
    return fig


def generate_input_series_plot(aligned, site=None):
    """Stacked panels of the aligned model inputs."""
    aligned = aligned.sort_values('solar.time')
    panels = [
        ('DO (mg/L)', [('DO.obs', 'DO observed', 'rgb(30, 60, 90)'), ('DO.sat', 'DO saturation', 'gray')]),
        ('Water temp (C)', [('temp.water', 'Water temperature', 'firebrick')]),
        ('PAR (umol m-2 s-1)', [('light', 'Light', 'goldenrod')]),
        ('Discharge (m3/s)', [('discharge', 'Discharge', 'teal')]),
        ('Depth (m)', [('depth', 'Depth', 'steelblue')]),
    ]
    fig = make_subplots(
        rows=len(panels), cols=1, shared_xaxes=True, vertical_spacing=0.04,
        subplot_titles=[title for title, _ in panels],
    )
    for row, (_, series) in enumerate(panels, start=1):
        for column, name, color in series:
            if column not in aligned.columns:
                continue
            fig.add_trace(go.Scatter(
                x=aligned['solar.time'],
                y=aligned[column],
                mode='lines',
                line=dict(color=color, width=1),
                name=name,
            ), row=row, col=1)

    site_label = f' - {site}' if site else ''
    fig.update_layout(
        title=f'Aligned Model Inputs{site_label}',
        height=config.PLOT_HEIGHT * 2,
        width=config.PLOT_WIDTH,
        showlegend=False,
        template='plotly_white',
    )
    return fig


def figure_to_json(fig):
    """Serialize a figure for web clients."""
    return pio.to_json(fig)


def save_figure(fig, path):
    """Write a figure as HTML (``.html``) or a static image (png, svg, pdf)."""
    output_dir = os.path.dirname(path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    if path.endswith('.html'):
        fig.write_html(path, include_plotlyjs='cdn')
    else:
        fig.write_image(path, width=fig.layout.width, height=fig.layout.height, scale=config.PLOT_SCALE)
    logger.info(f"Saved plot: {path}")
    return path


def save_run_plots(aligned, daily, predicted=None, output_dir=None, site=None, fmt='png'):
    """Render the standard set of plots for one gage's run."""
    output_dir = output_dir or config.PLOT_DIR
    prefix = f'{site}_' if site else ''
    paths = [
        save_figure(generate_daily_metabolism_plot(daily, site),
                    os.path.join(output_dir, f'{prefix}daily_metabolism.{fmt}')),
        save_figure(generate_input_series_plot(aligned, site),
                    os.path.join(output_dir, f'{prefix}model_inputs.{fmt}')),
    ]
    if predicted is not None and not predicted.empty:
        paths.append(save_figure(generate_do_comparison_plot(predicted, site),
                                 os.path.join(output_dir, f'{prefix}do_fit.{fmt}')))
    return paths
