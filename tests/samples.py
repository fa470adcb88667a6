"""
Sample documents from operadoras: WebService answers and demonstrativos
"""

DEMONSTRATIVO_PARCIAL = """<?xml version="1.0" encoding="UTF-8"?>
<ans:mensagemTISS xmlns:ans="http://www.ans.gov.br/padroes/tiss/schemas">
  <ans:operadoraParaPrestador>
    <ans:demonstrativoAnaliseConta>
      <ans:dadosProtocolo>
        <ans:registroANS>123456</ans:registroANS>
        <ans:numeroLotePrestador>{numero_lote}</ans:numeroLotePrestador>
        <ans:numeroProtocolo>PRT-555</ans:numeroProtocolo>
        <ans:dataProcessamento>2026-10-20</ans:dataProcessamento>
        <ans:guiaProcessada>
          <ans:guia>
            <ans:numeroGuiaPrestador>GC-1</ans:numeroGuiaPrestador>
            <ans:numeroGuiaOperadora>OP-1</ans:numeroGuiaOperadora>
            <ans:dataExecucao>2026-10-01</ans:dataExecucao>
            <ans:valorInformado>150.00</ans:valorInformado>
            <ans:valorProcessado>150.00</ans:valorProcessado>
            <ans:valorGlosado>0.00</ans:valorGlosado>
          </ans:guia>
        </ans:guiaProcessada>
        <ans:guiaProcessada>
          <ans:numeroGuiaPrestador>SP-1</ans:numeroGuiaPrestador>
          <ans:dataExecucao>2026-10-02</ans:dataExecucao>
          <ans:valorInformado>275.50</ans:valorInformado>
          <ans:valorProcessado>155.50</ans:valorProcessado>
          <ans:valorGlosado>120.00</ans:valorGlosado>
          <ans:itemGlosado>
            <ans:sequencialItem>2</ans:sequencialItem>
            <ans:codigoProcedimento>40901114</ans:codigoProcedimento>
            <ans:descricaoProcedimento>Ultrassonografia abdominal</ans:descricaoProcedimento>
            <ans:valorInformado>240.00</ans:valorInformado>
            <ans:valorGlosa>120.00</ans:valorGlosa>
            <ans:codigoGlosa>A7</ans:codigoGlosa>
          </ans:itemGlosado>
        </ans:guiaProcessada>
        <ans:guiaRecusada>
          <ans:numeroGuiaPrestador>GC-2</ans:numeroGuiaPrestador>
          <ans:valorInformado>150,00</ans:valorInformado>
          <ans:valorProcessado>0</ans:valorProcessado>
          <ans:valorGlosado>150.00</ans:valorGlosado>
        </ans:guiaRecusada>
      </ans:dadosProtocolo>
    </ans:demonstrativoAnaliseConta>
  </ans:operadoraParaPrestador>
</ans:mensagemTISS>"""

DEMONSTRATIVO_APROVADO = """<?xml version="1.0" encoding="UTF-8"?>
<demonstrativoAnaliseConta>
  <numeroLote>{numero_lote}</numeroLote>
  <dataProcessamento>2026-10-21</dataProcessamento>
  <guiaProcessada>
    <numeroGuiaPrestador>GC-1</numeroGuiaPrestador>
    <valorInformado>150.00</valorInformado>
    <valorProcessado>150.00</valorProcessado>
  </guiaProcessada>
</demonstrativoAnaliseConta>"""

PROTOCOLO_OK = """<?xml version="1.0" encoding="UTF-8"?>
<soap:Envelope xmlns:soap="http://www.w3.org/2003/05/soap-envelope">
  <soap:Body>
    <ans:protocoloRecebimento xmlns:ans="http://www.ans.gov.br/padroes/tiss/schemas">
      <ans:numeroProtocolo>  2026101800123 </ans:numeroProtocolo>
    </ans:protocoloRecebimento>
  </soap:Body>
</soap:Envelope>"""

SOAP_11_FAULT = """<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/">
  <soapenv:Body>
    <soapenv:Fault>
      <faultcode>soapenv:Server</faultcode>
      <faultstring>Lote com hash inválido &amp; rejeitado</faultstring>
    </soapenv:Fault>
  </soapenv:Body>
</soapenv:Envelope>"""

SOAP_12_FAULT = """<env:Envelope xmlns:env="http://www.w3.org/2003/05/soap-envelope">
  <env:Body>
    <env:Fault>
      <env:Code><env:Value>env:Sender</env:Value></env:Code>
      <env:Reason><env:Text xml:lang="pt">Assinatura digital inválida</env:Text></env:Reason>
    </env:Fault>
  </env:Body>
</env:Envelope>"""

ERROS_OPERADORA = """<resposta>
  <ans:mensagemErro xmlns:ans="http://www.ans.gov.br/padroes/tiss/schemas">
    <ans:codigo>1301</ans:codigo>
    <ans:mensagem><![CDATA[Beneficiário não encontrado]]></ans:mensagem>
    <ans:codigo>1706</ans:codigo>
    <ans:mensagem>Guia duplicada</ans:mensagem>
  </ans:mensagemErro>
</resposta>"""
