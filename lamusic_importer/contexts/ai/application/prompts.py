from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Sequence

from lamusic_importer.domain.contracts import GenerationOptions


NOT_INFORMED = "Não informado"
_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


VALIDATION_OPTIONS = GenerationOptions(temperature=0.05, max_tokens=64, top_p=0.6)
SUPPLIER_EXTRACTION_OPTIONS = GenerationOptions(temperature=0.05, max_tokens=2048, top_p=0.6)
PRODUCT_EXTRACTION_OPTIONS = GenerationOptions(temperature=0.2, max_tokens=2048)
CATEGORIZATION_OPTIONS = GenerationOptions(temperature=0.1, max_tokens=16, top_p=0.7)
BATCH_CATEGORIZATION_OPTIONS = GenerationOptions(temperature=0.1, max_tokens=1024, top_p=0.7)
DESCRIPTION_OPTIONS = GenerationOptions(temperature=0.7, max_tokens=1024)
SEO_TITLE_OPTIONS = GenerationOptions(temperature=0.5, max_tokens=40)
META_DESCRIPTION_OPTIONS = GenerationOptions(temperature=0.5, max_tokens=300)
IMPORT_SUMMARY_OPTIONS = GenerationOptions(temperature=0.4, max_tokens=512)


NFE_VALIDATION_TEMPLATE = """Analise este texto de NFE e determine se é válido para importação:

TEXTO NFE:
{{nfe_text}}

CRITÉRIOS:
- Contém produtos/mercadorias
- Tem dados do fornecedor (CNPJ, nome)
- Inclui valores e quantidades
- Formato de NFE válido

Responda no formato:
RESULTADO: VÁLIDA ou INVÁLIDA
MOTIVO: [justificativa em até 50 palavras]"""


SUPPLIER_EXTRACTION_TEMPLATE = """Extraia dados do fornecedor desta NFE:

TEXTO NFE:
{{nfe_text}}

FORMATO DE RETORNO (JSON válido):
{
  "supplier": {
    "name": "razão social",
    "cnpj": "12345678000199",
    "address": "endereço completo ou null",
    "city": "cidade ou null",
    "state": "estado ou null",
    "zipCode": "12345678",
    "phone": "telefone ou null",
    "email": "email ou null"
  }
}

REGRAS:
- CNPJ apenas números (remova pontos e barras)
- CEP apenas números
- Use null para campos não encontrados

JSON:"""


PRODUCT_EXTRACTION_TEMPLATE = """Extraia TODOS os produtos desta NFE em formato JSON:

TEXTO NFE:
{{nfe_text}}

FORMATO DE RETORNO (JSON válido):
{
  "products": [
    {
      "name": "nome do produto",
      "quantity": 1,
      "unitPrice": "0.00",
      "totalPrice": "0.00",
      "sku": "código ou null",
      "description": "descrição ou null",
      "brand": "marca ou null",
      "ncm": "código NCM ou null"
    }
  ]
}

REGRAS:
- Use strings para valores decimais
- Use null para campos não encontrados
- Extraia apenas produtos/mercadorias, ignore serviços
- Mantenha precisão nos valores

JSON:"""


CATEGORIZATION_TEMPLATE = """Você é um especialista em classificação de instrumentos musicais.

Analise o produto e escolha exatamente UMA categoria da lista abaixo.

CATEGORIAS VÁLIDAS:
{{category_list}}

PRODUTO:
Nome: {{name}}
Descrição: {{description}}
Marca: {{brand}}
SKU: {{sku}}

IMPORTANTE: Responda APENAS com o nome da categoria, exatamente como aparece na lista.

CATEGORIA:"""


BATCH_CATEGORIZATION_TEMPLATE = """Categorize estes produtos usando apenas as categorias listadas:

PRODUTOS:
{{products_list}}

CATEGORIAS VÁLIDAS:
{{category_list}}

FORMATO DE RETORNO (JSON):
{
  "categorizations": [
    {
      "index": 0,
      "name": "nome do produto",
      "category": "nome da categoria",
      "confidence": "alta"
    }
  ]
}

JSON:"""


DESCRIPTION_TEMPLATE = """Crie uma descrição profissional para este produto musical:

PRODUTO:
Nome: {{name}}
Categoria: {{category}}
Marca: {{brand}}
Características: {{features}}

REQUISITOS:
- 150-250 palavras
- Tom profissional e acessível
- Foque nos benefícios para músicos
- Inclua especificações técnicas relevantes
- Otimizado para SEO

DESCRIÇÃO:"""


SEO_TITLE_TEMPLATE = """Crie um título SEO otimizado de até 60 caracteres para:

Produto: {{name}}
Categoria: {{category}}
Marca: {{brand}}

O título deve ser claro, incluir palavras-chave e ser atrativo para cliques.
Responda apenas com o título, em uma única linha.

TÍTULO SEO:"""


META_DESCRIPTION_TEMPLATE = """Crie uma meta descrição SEO de até 160 caracteres para:

Produto: {{name}}
Categoria: {{category}}
Marca: {{brand}}

A meta descrição deve ser atrativa e incluir palavras-chave relevantes.

META DESCRIÇÃO:"""


IMPORT_SUMMARY_TEMPLATE = """Gere um resumo executivo da seguinte importação de NFE:

DADOS DA IMPORTAÇÃO:
Total de produtos: {{total_products}}
Fornecedor: {{supplier}}
Valor total: {{total_value}}
Data: {{import_date}}
Categorias identificadas: {{categories}}
Novos produtos: {{new_products}}
Produtos atualizados: {{updated_products}}

Gere um resumo profissional destacando:
- Principais achados
- Produtos de maior valor
- Recomendações para próximos passos

RESUMO:"""


def _render_value(value: Any) -> str:
    if value is None:
        return NOT_INFORMED
    if isinstance(value, (list, tuple, set)):
        joined = ", ".join(str(item).strip() for item in value if str(item or "").strip())
        return joined or NOT_INFORMED
    text = str(value).strip()
    return text or NOT_INFORMED


def render_template(template: str, payload: Mapping[str, Any]) -> str:
    """Fill every ``{{name}}`` placeholder; absent or blank values render as the not-informed marker."""
    return _PLACEHOLDER.sub(lambda match: _render_value(payload.get(match.group(1))), template)


def _bullet_list(names: Iterable[str]) -> str:
    return "\n".join(f"- {name}" for name in names if str(name or "").strip())


def build_nfe_validation_prompt(nfe_text: str) -> str:
    return render_template(NFE_VALIDATION_TEMPLATE, {"nfe_text": nfe_text})


def build_supplier_extraction_prompt(nfe_text: str) -> str:
    return render_template(SUPPLIER_EXTRACTION_TEMPLATE, {"nfe_text": nfe_text})


def build_product_extraction_prompt(nfe_text: str) -> str:
    return render_template(PRODUCT_EXTRACTION_TEMPLATE, {"nfe_text": nfe_text})


def build_categorization_prompt(product: Mapping[str, Any], category_names: Sequence[str]) -> str:
    return render_template(
        CATEGORIZATION_TEMPLATE,
        {
            "category_list": _bullet_list(category_names),
            "name": product.get("name"),
            "description": product.get("description"),
            "brand": product.get("brand"),
            "sku": product.get("sku"),
        },
    )


def build_batch_categorization_prompt(products: Sequence[Mapping[str, Any]], category_names: Sequence[str]) -> str:
    lines = []
    for index, product in enumerate(products):
        name = _render_value(product.get("name"))
        description = str(product.get("description") or "").strip()
        lines.append(f"{index}. {name} - {description}" if description else f"{index}. {name}")
    return render_template(
        BATCH_CATEGORIZATION_TEMPLATE,
        {"products_list": "\n".join(lines), "category_list": _bullet_list(category_names)},
    )


def _enrichment_payload(product: Mapping[str, Any]) -> dict:
    return {
        "name": product.get("name"),
        "category": product.get("category"),
        "brand": product.get("brand"),
        "features": product.get("features"),
    }


def build_description_prompt(product: Mapping[str, Any]) -> str:
    return render_template(DESCRIPTION_TEMPLATE, _enrichment_payload(product))


def build_seo_title_prompt(product: Mapping[str, Any]) -> str:
    return render_template(SEO_TITLE_TEMPLATE, _enrichment_payload(product))


def build_meta_description_prompt(product: Mapping[str, Any]) -> str:
    return render_template(META_DESCRIPTION_TEMPLATE, _enrichment_payload(product))


def build_import_summary_prompt(summary: Mapping[str, Any]) -> str:
    return render_template(IMPORT_SUMMARY_TEMPLATE, summary)
