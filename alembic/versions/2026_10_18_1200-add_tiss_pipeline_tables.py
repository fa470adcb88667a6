"""Add TISS claim pipeline tables

Revision ID: add_tiss_pipeline
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'add_tiss_pipeline'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # Operadoras and their WebService configuration
    op.create_table(
        'tiss_operadoras',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('registro_ans', sa.String(6), nullable=False),
        sa.Column('nome', sa.String(255), nullable=False),
        sa.Column('cnpj', sa.String(14), nullable=True),
        sa.Column('codigo_prestador', sa.String(20), nullable=False),
        sa.Column('webservice_config', sa.JSON(), nullable=True),
        sa.Column('webservice_secret_encrypted', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('clinic_id', 'registro_ans', name='uq_tiss_operadoras_clinic_ans'),
    )
    op.create_index('ix_tiss_operadoras_clinic_id', 'tiss_operadoras', ['clinic_id'])
    op.create_index('ix_tiss_operadoras_registro_ans', 'tiss_operadoras', ['registro_ans'])

    # Lotes
    op.create_table(
        'tiss_lotes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('operadora_id', sa.String(6), nullable=False),
        sa.Column('registro_ans', sa.String(6), nullable=False),
        sa.Column('nome_operadora', sa.String(255), nullable=True),
        sa.Column('numero_lote', sa.String(20), nullable=False),
        sa.Column('data_geracao', sa.Date(), nullable=False),
        sa.Column('guia_ids', sa.JSON(), nullable=False),
        sa.Column('quantidade_guias', sa.Integer(), nullable=False),
        sa.Column('valor_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='rascunho'),
        sa.Column('xml_content', sa.Text(), nullable=True),
        sa.Column('xml_hash', sa.String(64), nullable=True),
        sa.Column('xml_resposta', sa.Text(), nullable=True),
        sa.Column('protocolo', sa.String(50), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('erros', sa.JSON(), nullable=True),
        sa.Column('data_envio', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(128), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('clinic_id', 'numero_lote', name='uq_tiss_lotes_clinic_numero'),
    )
    op.create_index('ix_tiss_lotes_clinic_id', 'tiss_lotes', ['clinic_id'])
    op.create_index('ix_tiss_lotes_operadora_id', 'tiss_lotes', ['operadora_id'])
    op.create_index('ix_tiss_lotes_numero_lote', 'tiss_lotes', ['numero_lote'])
    op.create_index('ix_tiss_lotes_data_geracao', 'tiss_lotes', ['data_geracao'])
    op.create_index('ix_tiss_lotes_status', 'tiss_lotes', ['status'])
    op.create_index('ix_tiss_lotes_clinic_status', 'tiss_lotes', ['clinic_id', 'status'])
    op.create_index('ix_tiss_lotes_clinic_data', 'tiss_lotes', ['clinic_id', 'data_geracao'])

    # Guias
    op.create_table(
        'tiss_guias',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('tipo', sa.String(20), nullable=False),
        sa.Column('numero_guia_prestador', sa.String(20), nullable=False),
        sa.Column('numero_guia_operadora', sa.String(20), nullable=True),
        sa.Column('registro_ans', sa.String(6), nullable=False),
        sa.Column('codigo_prestador', sa.String(20), nullable=True),
        sa.Column('numero_carteira', sa.String(20), nullable=True),
        sa.Column('nome_beneficiario', sa.String(70), nullable=True),
        sa.Column('data_atendimento', sa.Date(), nullable=True),
        sa.Column('valor_total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('valor_aprovado', sa.Numeric(12, 2), nullable=True),
        sa.Column('valor_glosado', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='rascunho'),
        sa.Column('dados', sa.JSON(), nullable=False),
        sa.Column('lote_id', sa.Integer(), nullable=True),
        sa.Column('numero_lote', sa.String(20), nullable=True),
        sa.Column('protocolo_operadora', sa.String(50), nullable=True),
        sa.Column('data_envio', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['lote_id'], ['tiss_lotes.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tiss_guias_clinic_id', 'tiss_guias', ['clinic_id'])
    op.create_index('ix_tiss_guias_registro_ans', 'tiss_guias', ['registro_ans'])
    op.create_index('ix_tiss_guias_status', 'tiss_guias', ['status'])
    op.create_index('ix_tiss_guias_lote_id', 'tiss_guias', ['lote_id'])
    op.create_index('ix_tiss_guias_clinic_status', 'tiss_guias', ['clinic_id', 'status'])

    # Glosas
    op.create_table(
        'tiss_glosas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('guia_id', sa.Integer(), nullable=True),
        sa.Column('lote_id', sa.Integer(), nullable=True),
        sa.Column('operadora_id', sa.String(6), nullable=False),
        sa.Column('numero_guia_prestador', sa.String(20), nullable=False),
        sa.Column('tipo_guia', sa.String(20), nullable=True),
        sa.Column('data_recebimento', sa.Date(), nullable=False),
        sa.Column('valor_original', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('valor_glosado', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('valor_aprovado', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('itens_glosados', sa.JSON(), nullable=False),
        sa.Column('observacao_operadora', sa.Text(), nullable=True),
        sa.Column('prazo_recurso', sa.Date(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pendente'),
        sa.Column('recurso_id', sa.String(32), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['guia_id'], ['tiss_guias.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['lote_id'], ['tiss_lotes.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tiss_glosas_clinic_id', 'tiss_glosas', ['clinic_id'])
    op.create_index('ix_tiss_glosas_guia_id', 'tiss_glosas', ['guia_id'])
    op.create_index('ix_tiss_glosas_lote_id', 'tiss_glosas', ['lote_id'])
    op.create_index('ix_tiss_glosas_status', 'tiss_glosas', ['status'])
    op.create_index('ix_tiss_glosas_clinic_status', 'tiss_glosas', ['clinic_id', 'status'])

    # Recursos de glosa
    op.create_table(
        'tiss_recursos',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('glosa_id', sa.Integer(), nullable=False),
        sa.Column('guia_id', sa.Integer(), nullable=True),
        sa.Column('operadora_id', sa.String(6), nullable=False),
        sa.Column('numero_guia_prestador', sa.String(20), nullable=False),
        sa.Column('itens_contestados', sa.JSON(), nullable=False),
        sa.Column('valor_contestado', sa.Numeric(12, 2), nullable=False),
        sa.Column('justificativa_geral', sa.Text(), nullable=True),
        sa.Column('documentos_anexos', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='rascunho'),
        sa.Column('protocolo', sa.String(50), nullable=True),
        sa.Column('xml_content', sa.Text(), nullable=True),
        sa.Column('data_envio', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('resposta_operadora', sa.Text(), nullable=True),
        sa.Column('data_resposta', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valor_recuperado', sa.Numeric(12, 2), nullable=True),
        sa.Column('created_by', sa.String(128), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['glosa_id'], ['tiss_glosas.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['guia_id'], ['tiss_guias.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tiss_recursos_clinic_id', 'tiss_recursos', ['clinic_id'])
    op.create_index('ix_tiss_recursos_glosa_id', 'tiss_recursos', ['glosa_id'])
    op.create_index('ix_tiss_recursos_status', 'tiss_recursos', ['status'])
    op.create_index('ix_tiss_recursos_clinic_status', 'tiss_recursos', ['clinic_id', 'status'])

    # Certificados digitais (um por clínica)
    op.create_table(
        'tiss_certificates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_id', sa.Integer(), nullable=False),
        sa.Column('encrypted_pfx', sa.Text(), nullable=False),
        sa.Column('encrypted_password', sa.Text(), nullable=False),
        sa.Column('subject', sa.String(500), nullable=False),
        sa.Column('cnpj', sa.String(14), nullable=True),
        sa.Column('issuer', sa.String(500), nullable=False),
        sa.Column('serial_number', sa.String(64), nullable=False),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=False),
        sa.Column('tipo', sa.String(2), nullable=False, server_default='A1'),
        sa.Column('uploaded_by', sa.String(128), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tiss_certificates_clinic_id', 'tiss_certificates', ['clinic_id'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_tiss_certificates_clinic_id', table_name='tiss_certificates')
    op.drop_table('tiss_certificates')

    for index in ('ix_tiss_recursos_clinic_status', 'ix_tiss_recursos_status',
                  'ix_tiss_recursos_glosa_id', 'ix_tiss_recursos_clinic_id'):
        op.drop_index(index, table_name='tiss_recursos')
    op.drop_table('tiss_recursos')

    for index in ('ix_tiss_glosas_clinic_status', 'ix_tiss_glosas_status', 'ix_tiss_glosas_lote_id',
                  'ix_tiss_glosas_guia_id', 'ix_tiss_glosas_clinic_id'):
        op.drop_index(index, table_name='tiss_glosas')
    op.drop_table('tiss_glosas')

    for index in ('ix_tiss_guias_clinic_status', 'ix_tiss_guias_lote_id', 'ix_tiss_guias_status',
                  'ix_tiss_guias_registro_ans', 'ix_tiss_guias_clinic_id'):
        op.drop_index(index, table_name='tiss_guias')
    op.drop_table('tiss_guias')

    for index in ('ix_tiss_lotes_clinic_data', 'ix_tiss_lotes_clinic_status', 'ix_tiss_lotes_status',
                  'ix_tiss_lotes_data_geracao', 'ix_tiss_lotes_numero_lote', 'ix_tiss_lotes_operadora_id',
                  'ix_tiss_lotes_clinic_id'):
        op.drop_index(index, table_name='tiss_lotes')
    op.drop_table('tiss_lotes')

    op.drop_index('ix_tiss_operadoras_registro_ans', table_name='tiss_operadoras')
    op.drop_index('ix_tiss_operadoras_clinic_id', table_name='tiss_operadoras')
    op.drop_table('tiss_operadoras')
